from setuptools import setup, find_packages

setup(
    name="compliance-reporter",
    version="0.1.0",
    description="Active Directory license and update compliance reporting over WinRM",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "ldap3>=2.9",
        "pywinrm>=0.4.3",
        "pydantic>=2.5.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "compliance-report=compliance_reporter.cli:main",
        ],
    },
    python_requires=">=3.11",
)
