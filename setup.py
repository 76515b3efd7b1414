import os

from setuptools import setup, find_packages

__version__ = "0.1"

tests_require = ['pytest>=7', 'mypy', 'pycodestyle', 'types-setuptools', 'click']

extras_require = {
    'cli': ['click'],
    'test': tests_require,
}


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


setup(
    name='python-s7client',
    version=__version__,
    description='Pure Python client for reading and writing Siemens S7 data blocks',
    packages=find_packages(include=['s7client', 's7client.*']),
    package_data={'s7client': ['py.typed']},
    license='MIT',
    long_description=read('README.rst'),
    entry_points={
        'console_scripts': [
            's7client-server = s7client.server.__main__:main',
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Topic :: System :: Hardware",
        "Intended Audience :: Developers",
        "Intended Audience :: Manufacturing",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires='>=3.8',
    extras_require=extras_require,
)
