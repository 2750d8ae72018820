from setuptools import setup, find_packages

setup(
    name="fluentcoach",
    version="0.1.0",
    description="Spoken English practice with instant grammar and fluency feedback",
    author="",
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyaudio>=0.2.11",
        "numpy>=1.21.0",
        "rich>=12.5.0",
        "click>=8.1.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.9.0",
        "pyttsx3>=2.90",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-aiohttp>=1.0.5",
        ],
    },
    entry_points={
        "console_scripts": [
            "fluentcoach=fluentcoach.main:main",
        ],
    },
)
