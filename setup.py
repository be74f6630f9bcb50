"""
urban-ai Setup Script

Install with: pip install -e .
Test dependencies: pip install -e ".[test]"
"""

from setuptools import setup, find_packages

setup(
    name='urban-ai',
    version='0.1.0',
    description='Urban-planning legal assistant - multi-corpus RAG over Italian legislation',
    author='urban-ai Team',
    packages=find_packages(include=['urbanai', 'urbanai.*']),
    install_requires=[
        'pydantic>=2.5.0',
        'pydantic-settings>=2.1.0',
        'pyyaml>=6.0.1',
        'structlog>=23.2.0',
        'beautifulsoup4>=4.12.0',
        'tenacity>=8.2.0',
        'click>=8.1.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'urbanai=urbanai.cli:cli',
        ],
    },
    python_requires='>=3.11',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Legal Industry',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Scientific/Engineering :: Artificial Intelligence',
        'Topic :: Legal',
    ],
)
