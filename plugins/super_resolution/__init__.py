"""Super resolution plugin."""

manifest = {
    "title": "Super Resolution",
    "summary": "Tile-by-tile neural upscaling with edge-replicated padding and a sharpen/denoise finish.",
    "blueprint": "super_resolution",
    "category": "Image Enhancement",
    "icon": "img/super_resolution_icon.svg",
}


__all__ = ["manifest"]
