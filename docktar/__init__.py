"""docktar.

Create tar archives of binaries together with every shared library they load,
for use as the root filesystem of a ``FROM scratch`` container image.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
