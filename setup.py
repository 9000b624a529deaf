from __future__ import annotations

from setuptools import find_packages, setup

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

INSTALL_REQUIRES = [
    "SQLAlchemy>=2.0",
    "pydantic>=2.5",
    "loguru>=0.7",
    "python-dotenv>=1.0",
    "tomli>=2.0; python_version < '3.11'",
    "tomli-w>=1.0",
    "requests>=2.31",
    "httpx>=0.27",
    "feedparser>=6.0",
    "beautifulsoup4>=4.12",
    "python-dateutil>=2.8",
    "prometheus-client>=0.19",
]

TEST_REQUIRES = [
    "pytest>=7.4",
    "hypothesis>=6.90",
]

if __name__ == "__main__":
    setup(
        name="gridiron-ingest",
        version=PROJECT_VERSION,
        description="Fantasy football news ingestion and normalization pipeline",
        python_requires=PYTHON_REQUIRES_SPECIFIER,
        packages=find_packages(include=["src", "src.*", "config", "gridiron"]),
        py_modules=["main", "run_ingest"],
        install_requires=INSTALL_REQUIRES,
        extras_require={"test": TEST_REQUIRES},
        entry_points={
            "console_scripts": [
                "gridiron-ingest=run_ingest:main",
                "gridiron-config=gridiron.config_manager:main",
            ]
        },
    )
