"""
Core Algorithm Modules

Detection stages, in pipeline order:
- preprocess: downscale, Sobel edges, percentile interest mask
- components: connected-component labeling (Blob)
- bands: horizontal control bands and vertical gates
- blob_classifier: blob → knob/light/button/switch drafts
- circle_finder / circle_pass: gradient-voting circle search per band
- radial: radial edge score, LED and printed glyph tests
- promote: lit-button and concentric-knob promotion
- post_filter / nms: size floor, column thinning, same-kind suppression
- column_merge: per-band merge and cross-band column snap
- labels: default "Knob n" style labels
"""

__all__ = [
    "preprocess",
    "components",
    "bands",
    "blob_classifier",
    "circle_finder",
    "circle_pass",
    "radial",
    "sampling",
    "promote",
    "post_filter",
    "nms",
    "column_merge",
    "geometry",
    "labels",
]
