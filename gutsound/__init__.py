"""
GutSound: Acoustic Gut-Sound Analytics

Pipeline Stages (fixed order):
    1. Ingest & Calibrate (noise floor, signal quality)
    2. Contact (on-body vs in-air verdict)
    3. Events (candidate detection + classifier ensemble)
    4. Heart (cardiac band BPM / HRV)
    5. Scoring (motility index, activity timeline, rhythmicity)
    6. Readiness (vagal readiness against patient history)
    7. Final Roll-Up

Invariants:
    - All event timestamps are milliseconds from recording start
    - A recording judged in-air scores zero motility, never a guess
    - Scores are integers in [0, 100], rounded half-up
    - Same input + same config = identical analysis output
"""

__version__ = "1.0.0"
