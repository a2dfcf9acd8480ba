#!/usr/bin/env python3
"""
Setup script for DeadR distribution.
"""

from setuptools import setup, find_namespace_packages
import os

HERE = os.path.dirname(os.path.abspath(__file__))


# Read README for long description
def read_file(filename):
    with open(os.path.join(HERE, filename), 'r', encoding='utf-8') as f:
        return f.read()


# Read requirements
def read_requirements():
    with open(os.path.join(HERE, 'requirements.txt'), 'r') as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]


setup(
    name='deadr',
    version='0.3.0',
    description='Monocular visual-inertial dead reckoning for pedestrians',
    long_description=read_file('README.md'),
    long_description_content_type='text/markdown',
    author='DeadR Contributors',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['core', 'core.*', 'navigation', 'navigation.*']),
    py_modules=['utils', 'main'],
    data_files=[('config', ['config/config.yaml'])],
    install_requires=read_requirements(),
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9',
    entry_points={
        'console_scripts': [
            'deadr=main:main',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Image Recognition',
    ],
    keywords='dead-reckoning visual-odometry pedestrian step-detection sensor-fusion',
)
