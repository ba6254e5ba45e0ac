# setup.py
from setuptools import setup, find_packages

setup(
    name="potluck",
    version="0.1.0",
    description="Nginx configuration builder and supervisor for local development services",
    package_dir={"": "src"},
    packages=find_packages(where="src"),  # Finds 'potluck' and its subpackages under src/
    python_requires=">=3.8",
    install_requires=[
        "PyYAML",  # YAML settings files
        "psutil",  # Process table lookup for service status
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
    ],
)
