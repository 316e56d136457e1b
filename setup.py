"""
homebat
Setup configuration for the home battery scheduling and fleet distribution package.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read requirements
def read_requirements(filename):
    """Read requirements from file."""
    with open(this_directory / filename, 'r') as f:
        return [line.strip() for line in f
                if line.strip() and not line.startswith('#')]

# Core requirements
install_requires = read_requirements('requirements.txt')

# Development requirements
extras_require = {
    'dev': read_requirements('requirements-dev.txt'),
}

setup(
    name="homebat",
    version="0.1.0",
    author="homebat developers",
    description="Price-driven home battery schedules (LP) and fleet power distribution",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests*', 'examples*', 'docs*']),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Mathematics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        'console_scripts': [
            'homebat=homebat.cli:main',
        ],
    },
    zip_safe=False,
    keywords='battery optimization energy storage LP arbitrage dynamic tariff fleet',
)
