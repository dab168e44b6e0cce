"""
Journey map editing engine.

Pure, storage-agnostic building blocks:

    cell_variants    per-section-type payload rules (default / text / empty)
    document         immutable document model + repairing loader
    mutations        document -> document edit and reorder operations
    sentiment_curve  flat-handle bezier through per-stage values
    analytics        derived metrics and the cross-map roll-up
    autosave         debounced save state machine
    session          one open document: edits + autosave + analytics
"""
