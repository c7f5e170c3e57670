from setuptools import setup, find_packages  # ignore: type

setup(
    name="search_link",
    version="1.0.0",
    description="Shared HTTP transport, request execution, nested aggregation rewriting and bulk sizing "
                "for Elasticsearch",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.11",
    install_requires=["requests", "certifi", "pyyaml", "Click", "cerberus", "jsonpath-ng", "pydantic>=2",
                      "cbor2"],
    extras_require={
        "test": ["pytest", "requests-mock", "pytest-mock"],
    },
    entry_points={
        "console_scripts": [
            "search-link = search_link.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: Apache Software License",
    ],
)
