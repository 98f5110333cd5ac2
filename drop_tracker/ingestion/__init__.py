"""
Ingestion layer — upstream client, drop extraction, history merge, orchestration.

Submodules:
  runemetrics_client — RuneMetrics profile feed, hiscore tier probes, reference data
  drops              — "I found ..." drop extraction from the activity feed
  merge              — pure reconciliation of a fetched profile into a PlayerRecord
  orchestrator       — per-player fetch → merge → save workflow
  batch              — sequential, throttled ingestion of all active players
"""
