from setuptools import setup, find_packages

setup(
    name="slackapproval",
    version="0.1.0",
    description="Route coding agent permission requests and questions to Slack for human approval",
    author="phisanti",
    author_email="tisalon@outlook.com",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "slack_sdk>=3.27.0",
        "aiohttp>=3.9.0",
        "python-dotenv>=1.0.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "slackapproval=slackapproval.main:slackapproval",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
