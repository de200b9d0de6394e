from setuptools import setup, find_packages

setup(
    name='kgreason',
    version='0.1.0',
    author='Marc Hadfield',
    author_email='marc@vital.ai',
    description='In-memory Datalog reasoner with incremental maintenance',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    url='https://github.com/vital-ai/kgreason',
    packages=find_packages(exclude=["test", "test_data"]),
    license='Apache License 2.0',
    install_requires=[

        'networkx',
        'pandas',
        'pyyaml',
        'tqdm',

        'lark>=1.2.2'

    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.11',
)
