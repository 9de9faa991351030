#!/usr/bin/env python -Es
"""Run GATK3 variant calling on a directory of raw alignments.

Sorts, merges and marks duplicates in SAM/BAM inputs, realigns around indels,
recalibrates base qualities, calls variants per contig with HaplotypeCaller,
joint genotypes and optionally applies VQSR.

Usage:
  gatkflow_run.py -R <reference.fa> -I <input dir> -O <output dir>
                  -S <known sites vcf> -C <tool config> -c <cores per node>
     -t type of parallelization to use:
          - local: Non-distributed, one contig at a time (default)
          - multicore: Contigs in parallel on the local machine
     -n total number of cores to use
     -w work directory for logs and temporary files
"""
import sys

from gatkflow.pipeline.main import run_main

if __name__ == "__main__":
    sys.exit(run_main(sys.argv[1:]))
