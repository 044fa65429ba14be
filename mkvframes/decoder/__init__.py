"""
Raw payload decoders.

- colorspace: limited-range BT.601 YUV -> packed RGB
- image: planar YUV 4:2:0 frame -> RGB raster
- audio: 32-bit PCM bytes -> integer samples
"""
