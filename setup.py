#!/usr/bin/python
# -*- encoding: utf-8 -*-
import ast
import re

from setuptools import find_packages
from setuptools import setup

## The version number is kept in smsremind/__init__.py only
_version_re = re.compile(r"__version__\s+=\s+(.*)")
with open("smsremind/__init__.py", "rb") as f:
    version = str(
        ast.literal_eval(_version_re.search(f.read().decode("utf-8")).group(1))
    )

if __name__ == "__main__":
    test_packages = [
        "pytest",
        "pytest-coverage",
        "coverage",
    ]

    setup(
        name="smsremind",
        version=version,
        description="SMS reminders for CalDAV calendar events",
        long_description=open("README.md").read(),
        long_description_content_type="text/markdown",
        classifiers=[
            "Development Status :: 4 - Beta",
            "Intended Audience :: End Users/Desktop",
            "License :: OSI Approved :: Apache Software License",
            "Operating System :: OS Independent",
            "Programming Language :: Python :: 3",
            "Topic :: Office/Business :: Scheduling",
            "Topic :: Communications :: Telephony",
        ],
        keywords="caldav sms reminder",
        license="Apache-2.0",
        packages=find_packages(exclude=["tests", "tests.*"]),
        include_package_data=True,
        zip_safe=False,
        python_requires=">=3.9",
        install_requires=[
            "lxml",
            "requests",
            "icalendar",
            "phonenumbers",
            "tzlocal",
            "typing_extensions;python_version<'3.11'",
        ],
        extras_require={
            "test": test_packages,
            "yaml": ["pyyaml"],
        },
        entry_points={
            "console_scripts": [
                "smsremind = smsremind.cli:main",
            ],
        },
    )
