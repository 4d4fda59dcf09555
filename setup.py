from setuptools import setup, find_packages

setup(
    name="voicetrigger",
    version="0.1.0",
    description="Real-time spoken trigger phrase alerts over a live transcription session",
    author="",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyaudio>=0.2.11",
        "numpy>=1.21.0",
        "google-genai>=1.20.0",
        "google-auth>=2.10.0",
        "rich>=12.5.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "voicetrigger=voicetrigger.main:main",
        ],
    },
)
