"""
Setup configuration for the live medical dictation relay.
"""

from setuptools import setup, find_packages

setup(
    name='scribe-relay',
    version='1.0.0',
    description='Live dictation relay from browser audio to AWS Transcribe with S3 archiving',
    author='Scribe Relay Team',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.11',
    install_requires=[
        'boto3>=1.28.0',
        'botocore>=1.31.0',
        'amazon-transcribe>=0.6.2',
        'fastapi>=0.110.0',
        'uvicorn>=0.27.0',
        'python-dotenv>=1.0.0',
        'python-Levenshtein>=0.21.0',
    ],
    extras_require={
        'dev': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.21.0',
            'pytest-cov>=4.1.0',
            'moto>=5.0.0',
            'httpx>=0.25.0',
            'flake8>=6.0.0',
            'black>=23.0.0',
            'mypy>=1.4.0',
        ]
    },
    entry_points={
        'console_scripts': [
            'scribe-relay=scribe_relay.server:main',
        ],
    },
)
