import codecs
import os
import re

from setuptools import find_packages
from setuptools import setup


def read_file(filename, encoding='utf8'):
    """Read unicode from given file."""
    with codecs.open(filename, encoding=encoding) as fd:
        return fd.read()


here = os.path.abspath(os.path.dirname(__file__))

# read version number from package init
init_fn = os.path.join(here, 'src', 'acme_client', '__init__.py')
meta = dict(re.findall(r"""__([a-z]+)__ = '([^']+)""", read_file(init_fn)))

readme = read_file(os.path.join(here, 'README.rst'))
version = meta['version']

install_requires = [
    'configobj>=5.0.6',
    'cryptography>=43.0.0',
    # Josepy 2+ drops the PyOpenSSL based helpers and changes the JWS
    # internals the nonce header relies on.
    'josepy>=1.14.0, <2',
    # PyOpenSSL is only used for the SNI probe of dvsni self-checks.
    'PyOpenSSL>=25.0.0, <26',
    'pyrfc3339',
    'pytz>=2019.3',
    'requests>=2.20.0',
]

test_extras = [
    'pytest',
    'pytest-xdist',
]

setup(
    name='acme-client',
    version=version,
    description='Client engine for the signed-JSON ACME drafts',
    long_description=readme,
    author="ACME Client Developers",
    license='Apache License 2.0',
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security',
    ],

    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        'test': test_extras,
    },
)
