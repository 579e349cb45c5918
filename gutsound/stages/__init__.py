"""
GutSound Pipeline Stages

Fixed order:
    ingest     - validate input, noise floor calibration
    contact    - on-body contact quality
    events     - gut-sound event detection and classification
    heart      - heart rate and HRV
    scoring    - motility and rhythmicity
    readiness  - vagal readiness (requires a patient id)
    rollup     - session report
"""
