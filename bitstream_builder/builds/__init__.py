"""Build orchestration module.

This module handles:
- Preflight validation of the workspace
- Composing and running toolchain command scripts
- Artifact resolution and canonical naming
- Packaging bitstreams into the FPGA Manager format
- The sequential build and clean pipelines
"""

# Submodules are imported directly, e.g. bitstream_builder.builds.service
