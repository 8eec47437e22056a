"""Intermediate Representation (IR) and the language parsers that feed it.

The IR sits between language-specific source trees (R, Python) and the
emitted record stream. It normalizes:
- Declarations (functions, classes) with their visibility
- Signatures and arguments in declaration order
- Structured pieces of free-form documentation
"""
