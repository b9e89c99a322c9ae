"""setuptools setup module for nostrum.

Docs:
https://packaging.python.org/en/latest/distributing.html
https://setuptools.readthedocs.io/
https://www.python.org/dev/peps/pep-0440/#version-specifiers

Based on https://github.com/pypa/sampleproject/blob/master/setup.py
"""
from setuptools import setup, find_packages


setup(name='nostrum',
      version='0.1',
      description='Nostr client library: signed events, proof of work, and multi-relay queries',
      long_description=open('README.md').read(),
      long_description_content_type='text/markdown',
      packages=find_packages(),
      include_package_data=True,
      license='Public domain',
      python_requires='>=3.9',
      classifiers=[
          'Development Status :: 3 - Alpha',
          'Intended Audience :: Developers',
          'License :: Public Domain',
          'Programming Language :: Python :: 3',
          'Programming Language :: Python :: 3.9',
          'Programming Language :: Python :: 3.10',
          'Programming Language :: Python :: 3.11',
          'Topic :: Software Development :: Libraries :: Python Modules',
      ],
      keywords='nostr relay websocket schnorr secp256k1 bech32 nip-13 proof-of-work',
      install_requires=[
          'bech32',
          'cryptography>=3.4',
          'oauth-dropins>=6.4,<8',
          'requests>=2.22',
          'secp256k1',
          'websockets>=11.0',
      ],
      extras_require={
          'tests': ['mox3>=0.28'],
      },
      tests_require=['mox3>=0.28'],
)
