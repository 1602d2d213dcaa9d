"""CLI tools for the tenderLens pipeline.

- ``python -m src.cli.analyze`` -- answer queries against local PDF files
  (also reachable as ``python -m src.cli``).

Uses argparse; heavy imports are deferred inside functions so ``--help``
stays fast.
"""
