"""PhishScan models package.

Defines the shared data contracts used across the analysis pipeline:

  - analysis.py  — RiskLevel, Severity, Finding, Highlight, AnalysisResult
  - responses.py — JSON response builders for POST /api/analyze (200 / 4xx / 500)
"""
