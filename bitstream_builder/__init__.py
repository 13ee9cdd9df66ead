"""Bitstream Builder - backend-agnostic Vivado bitstream builds.

This package orchestrates FPGA bitstream builds for Red Pitaya boards with an
external Vivado toolchain running locally, in a container, or on a remote
host, and packages the result for the board's FPGA Manager.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
