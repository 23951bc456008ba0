"""Registry — the persisted, advisory record of installed skills.

The registry is a cache over the filesystem: which tools have a skill and
whether it is enabled are always re-derived from a live scan of every tool
root on read (see ``reconciler``).
"""
