"""
Sync daemon package for the SolarGuardian-to-store pipeline.

Polls the SolarGuardian open API for power stations, gateways, devices,
organizations, device parameters with their latest history sample, and alarms,
and mirrors them into a persistent key-value tree backed by local SQLite.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""
