"""Simple example: protect a generated image, then unlock it with its key."""
from pathlib import Path

from PIL import Image, ImageDraw

from assetdrm.pipeline import access, orchestrator
from assetdrm.utils.media_io import MediaFile, write_bytes


def demo():
	out_dir = Path(__file__).parent.parent / "sample_media"
	out_dir.mkdir(parents=True, exist_ok=True)

	src = out_dir / "example.png"
	img = Image.new("RGB", (1280, 960), (30, 90, 160))
	ImageDraw.Draw(img).ellipse((320, 160, 960, 800), fill=(240, 200, 40))
	img.save(src)

	upload = orchestrator.protect_upload_sync(MediaFile.from_path(src), "visual")
	write_bytes(str(out_dir / upload.encrypted_filename), upload.encrypted)
	write_bytes(str(out_dir / upload.preview.filename), upload.preview.data)
	print("Preview:", upload.preview.filename, f"{upload.preview.width}x{upload.preview.height}")

	asset = access.decrypt_asset(upload.encrypted, upload.key, name="example.unlocked")
	target = asset.save(out_dir)

	print("Roundtrip ok:", target.read_bytes() == src.read_bytes(), "manifest:", upload.manifest())


if __name__ == "__main__":
	demo()
