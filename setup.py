from setuptools import setup, find_packages

setup(
    name="registry-compliance-agent",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={
        "registry_compliance": ["baselines/*.yaml"],
    },
    install_requires=[
        "pydantic>=2.5.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "registry-compliance=registry_compliance.agent:main",
        ],
    },
    python_requires=">=3.11",
)
