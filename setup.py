"""Setup configuration for the mailsift filtering engine."""

from setuptools import setup, find_packages

setup(
    name="mailsift",
    version="0.1.0",
    description="Dynamic email filtering engine with burst-promoted blacklist rules",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite>=0.19",
        "PyYAML>=6.0",
        "prompt_toolkit>=3.0",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "mailsift=mailsift.main:main",
        ],
    },
)
