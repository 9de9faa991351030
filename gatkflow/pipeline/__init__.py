"""High level code for driving the variant calling pipeline.

This structures processing steps into the following modules:

  - main.py: Run all stages from raw alignments to recalibrated variants.
    - cleanbam.py: Sort inputs and mark duplicates.
    - lifecycle.py: Merge, split, index and relocate intermediate files.
    - artifact.py: Typed records for files passed between stages.
    - config_utils.py: Load tool configuration and validate run settings.

Realignment, recalibration and variant calling live in `gatkflow.variation`.
"""
