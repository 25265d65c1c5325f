from pathlib import Path
from setuptools import setup, find_packages


def read_readme() -> str:
    readme_path = Path(__file__).resolve().parent / "README.md"
    return readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""


setup(
    name="modecrypt",
    version="1.0.0",
    packages=find_packages(include=["modecrypt", "modecrypt.*"]),
    install_requires=[
        "cryptography>=43.0.0",
        "numpy>=1.24.0",
        "pillow>=10.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "modecrypt=modecrypt.main:main",
        ],
    },
    python_requires=">=3.10",
    description="ECB/CBC block-mode engine for header-preserving file encryption",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
)
