from os import path
from setuptools import setup, find_packages


with open(path.join(path.abspath(path.dirname(__file__)), "README.md")) as f:
    long_description = f.read()


setup(
    name="ic-testnet-kit",
    version="0.1.0",
    license="MIT",
    description="Brings up a local multi-node replica testnet for automated tests",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords="internet-computer replica testnet tests",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Topic :: Software Development :: Testing",
    ],
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.8",
    install_requires=["pyxdg", "toml", "requests", "loguru", "PyYAML"],
    extras_require={ "test": ["pytest"] },
    entry_points={ "console_scripts": ["ic-testnet-kit = ic_testnet_kit.cli:main"] },
    zip_safe=False,
)
