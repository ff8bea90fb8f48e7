from setuptools import setup, find_packages
from cftool import __version__


with open('README.md', 'r', encoding='utf-8') as f:
    readme = f.read()

setup(
    name='cftool',
    description='Codeforces submit tool',
    long_description=readme,
    long_description_content_type='text/markdown',
    version=__version__,
    packages=find_packages(exclude=['tests']),
    include_package_data=True,
    install_requires=[
        'Click>=8',
        'requests>=2.27',
        'beautifulsoup4',
    ],
    extras_require={
        'test': ['pytest'],
    },
    python_requires=">=3.8",
    entry_points='''
        [console_scripts]
        cftool=cftool.cli:cli
    ''',
)
