"""Sync — the operations that change what is installed.

- install / apply to more tools / uninstall / partial removal (``installer``)
- update checks and the backup-then-replace update flow (``updater``)
- enable / disable by moving between roots (``toggle``)
- preview of what a source offers (``catalog``)
"""
