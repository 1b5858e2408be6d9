"""
Setup script for rawlinear
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="rawlinear",
    version="0.1.0",
    author="Sam",
    description="Convert camera RAW files into linear 16-bit TIFFs for stacking and scientific work",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["rawlinear", "rawlinear.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "rawpy>=0.18.1",
        "numpy>=1.24.0",
        "opencv-python>=4.8.0",
        "Pillow>=10.0.0",
        "PyExifTool>=0.5.5",
        "click>=8.1.0",
        "PyYAML>=6.0",
        "tqdm>=4.65.0",
        "colorlog>=6.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rawlinear=rawlinear.cli.convert_commands:main",
        ],
    },
    include_package_data=True,
    package_data={
        "rawlinear": ["config.yaml"],
    },
)
