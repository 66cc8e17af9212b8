#!/usr/bin/env python

from setuptools import setup, find_packages

long_description = open("README.rst").read()
install_requires = ['numpy>=1.18.5',
                    'quantities>=0.12.1']
extras_require = {
    'test': ['pytest'],
}

with open("csdio/version.py") as fp:
    d = {}
    exec(fp.read(), d)
    csdio_version = d['version']

setup(
    name="csdio",
    version=csdio_version,
    packages=find_packages(include=["csdio", "csdio.*"]),
    install_requires=install_requires,
    extras_require=extras_require,
    author="csdio authors and contributors",
    description="csdio reads, samples and repairs CSD measurement recordings "
                "written by data loggers",
    long_description=long_description,
    license="BSD-3-Clause",
    python_requires=">=3.8",
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: BSD License',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3 :: Only',
        'Topic :: Scientific/Engineering']
)
