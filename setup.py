from pathlib import Path

from setuptools import find_packages, setup


def get_description() -> str:
    readme_path = Path(__file__).parent / "README.md"

    if not readme_path.exists():
        return """
        # chromaconfig
        """.strip()

    return readme_path.read_text(encoding="utf-8")


setup(
    name="chromaconfig",
    version="0.1.0",
    author="Chroma",
    author_email="hello@chroma.com",
    license="Apache-2.0",
    description="Collection configuration, index schema and embedding function resolution for Chroma clients",
    long_description=get_description(),
    long_description_content_type="text/markdown",
    project_urls={
        "Homepage": "https://trychroma.com",
        "GitHub": "https://github.com/chroma-core/chroma",
    },
    classifiers=[
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    packages=find_packages(include=["chromaconfig", "chromaconfig.*"]),
    include_package_data=True,
    install_requires=[
        "pydantic >= 2.0",
        "pydantic-settings >= 2.0",
        "overrides >= 7.3.1",
        "typing_extensions >= 4.5.0",
        "numpy >= 1.22.5",
        "httpx >= 0.27.0",
        "tenacity >= 8.2.3",
    ],
    extras_require={
        "onnx": ["onnxruntime >= 1.14.1", "tokenizers >= 0.13.2", "tqdm >= 4.65.0"],
        "test": ["pytest", "hypothesis"],
    },
)
