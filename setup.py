"""
Setup script for SpliceTracks.

Installs the ``SpliceTracks`` package and the ``splicetracks`` command.

Usage:
    pip install -e .
    pip install -e .[test]
"""

from setuptools import setup, find_packages

setup(
    name='SpliceTracks',
    version='2025.1',
    description='Genome-wide splice-site probability tracks from a sequence scoring model',
    author='SpliceTracks Team',
    license='MIT',
    packages=find_packages(include=['SpliceTracks', 'SpliceTracks.*']),
    python_requires='>=3.9',
    install_requires=[
        'numpy>=1.24.0',
        'pandas>=1.5.0',
        'psutil>=5.8.0',
        'pyfaidx>=0.7.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': [
            'splicetracks = SpliceTracks.cli:main',
        ],
    },
    zip_safe=False,
)
