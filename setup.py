"""
Setup script for Ultima - Serverless peer-to-peer encrypted chat.

This messenger provides:
- Direct WebRTC connections, signaled by copy-pasting connection codes
- AES-256-GCM protected connection codes with optional personal passphrase
- Text chat, typing presence and chunked file transfer
- Optional voice channel
- Cross-platform terminal UI (Linux, Windows, macOS)
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='ultima-p2p',
    version='1.0.0',
    description='A terminal peer-to-peer encrypted chat with manual, serverless signaling',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'Topic :: Security :: Cryptography',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.9',
    install_requires=[
        'textual>=0.86.0',
        'cryptography>=42.0.4',
        'rich>=13.7.0',
        'aiofiles>=23.2.1',
        'aiortc>=1.6.0',
        'tomli>=2.0.1; python_version<"3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.21.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'ultima=ultima.main:main',
        ],
    },
)
