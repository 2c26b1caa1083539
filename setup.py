from setuptools import setup, find_packages

setup(
    name="cascade-diffuse",
    version="0.1.0",
    description="Two-stage cascaded latent diffusion sampling for text-to-image generation",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["cascade", "cascade.*"]),
    python_requires=">=3.10",
    install_requires=[
        "jax",
        "jaxtyping",
        "einops",
        "numpy",
        "tokenizers",
        "huggingface_hub>=0.23",
        "Pillow",
        "envyaml",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "cascade-generate=cascade.cli:main",
        ],
    },
)
