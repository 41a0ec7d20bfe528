"""IDL generation for on-chain programs.

Drives an external IDL generator (``anchor`` from PATH, or ``shank`` installed
under the project's binary install root), reconciles its version with the
program's Cargo.toml, then hands the IDL to the enrichment and SDK generation
steps.

CLI usage is available via `python -m processes.idl`.
"""
