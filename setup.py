from setuptools import setup, find_packages

setup(
    name="arlon-ctl",
    version="0.10.0",
    description="Arlon cluster controller and profile tooling on top of Argo CD",
    packages=find_packages(exclude=("tests", "tests.*")),
    include_package_data=True,
    package_data={
        "arlon_ctl.profile": [
            "manifests/*",
            "manifests/templates/*",
        ],
    },
    python_requires=">=3.9",
    install_requires=[
        "cli-core-yo>=1.0,<2",
        "GitPython>=3.1",
        "httpx>=0.24",
        "kopf>=1.37",
        "kubernetes>=26.1",
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "rich>=13.0",
        "typer>=0.9",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "arlon-ctl=arlon_ctl.cli:main",
        ],
    },
)
