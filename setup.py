from setuptools import setup, find_packages

setup(
    name="doorbell",
    version="0.1.0",
    packages=find_packages(include=["config", "core", "service"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.31.0",
        "paho-mqtt>=2.0.0",
        "python-dotenv>=1.0.0",
        "pydub>=0.25.1",
        "audioop-lts>=0.2.1; python_version>='3.13'",
        "numpy>=1.26",
        "sounddevice>=0.4.6",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    entry_points={
        "console_scripts": ["doorbell=service.app:main"],
    },
    python_requires=">=3.13",
)
