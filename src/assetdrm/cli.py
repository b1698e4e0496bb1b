from __future__ import annotations

import json
import logging
from pathlib import Path

import typer

from .config import AppConfig, load_config
from .encryption import keys
from .errors import DecryptionError, InvalidKeyError, InvalidUpload, KeyNotAvailable, MediaReadError, ProtectionError
from .pipeline import access, orchestrator
from .preview.dispatch import generate_preview_sync
from .utils import ffmpeg, media_io, validation

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help="Protect creative assets: encrypt masters, build previews, unlock purchases.")

VerboseOption = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv)")
ConfigOption = typer.Option(None, "--config", help="Path to a YAML configuration file")


def _setup(verbose: int, config_path: str | None) -> AppConfig:
    try:
        config = load_config(config_path)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--config")
    log_level = getattr(logging, config.log_level.upper(), logging.WARNING)
    if verbose >= 2:
        log_level = logging.DEBUG
    elif verbose == 1:
        log_level = min(log_level, logging.INFO)
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")
    LOGGER.debug("Configuration: chunk_size=%d max_upload_mb=%s", config.chunk_size, config.max_upload_mb)
    return config


def _load_media(path: str) -> media_io.MediaFile:
    input_path = Path(path)
    if not input_path.exists():
        raise typer.BadParameter(f"Input file not found: {path}")
    try:
        return media_io.MediaFile.from_path(input_path)
    except MediaReadError as e:
        raise typer.BadParameter(str(e))


def _parse_tag(value: str) -> media_io.MediaTypeTag:
    tag = media_io.MediaTypeTag.parse(value)
    if tag is None:
        choices = ", ".join(t.value for t in media_io.MediaTypeTag)
        raise typer.BadParameter(f"Unknown media type {value!r} (choose from {choices})", param_hint="--media-type")
    return tag


@app.command("keygen")
def keygen(
    output: str = typer.Option("", "-o", "--output", help="Write the key to this file instead of stdout"),
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Generate a fresh 256-bit asset key."""
    _setup(verbose, config)
    key = keys.generate_key()
    if output:
        keys.save_key(output, key)
        typer.echo(f"Key saved to {output} (fingerprint {keys.key_fingerprint(key)})")
    else:
        typer.echo(key)


@app.command("protect")
def protect(
    input: str = typer.Argument(..., help="Path to the master media file"),
    media_type: str = typer.Option(..., "-t", "--media-type", help="audio, visual, vfx, sfx or 3d"),
    output_dir: str = typer.Option("", "-d", "--output-dir", help="Directory for the artifacts (default: next to input)"),
    keyfile: str = typer.Option("", "-k", "--keyfile", help="Write the key here instead of printing it"),
    strict: bool = typer.Option(False, "--strict", help="Reject files that do not match the media type"),
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Encrypt a master file and generate its public preview.

    Writes `<name>.encrypted`, the preview, and `<name>.manifest.json`.
    """
    cfg = _setup(verbose, config)
    tag = _parse_tag(media_type)
    media = _load_media(input)
    if strict:
        result = validation.validate_file(media, tag, cfg.max_upload_mb)
        if not result.is_valid:
            typer.echo(f"ERROR: {result.error}", err=True)
            raise typer.Exit(code=1)

    out_dir = Path(output_dir) if output_dir else Path(input).parent
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        upload = orchestrator.protect_upload_sync(media, tag, cfg)
    except InvalidUpload as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(code=1)
    except ProtectionError as e:
        typer.echo(f"ERROR: Protection failed: {e}", err=True)
        raise typer.Exit(code=1)

    encrypted_path = out_dir / upload.encrypted_filename
    preview_path = out_dir / upload.preview.filename
    manifest_path = out_dir / f"{media.filename}.manifest.json"
    media_io.write_bytes(str(encrypted_path), upload.encrypted)
    media_io.write_bytes(str(preview_path), upload.preview.data)
    media_io.write_bytes(str(manifest_path), json.dumps(upload.manifest(), indent=2).encode("utf-8"))

    typer.echo(f"Encrypted {upload.media_type.value} file: {input} -> {encrypted_path}")
    if upload.preview.is_passthrough:
        typer.echo(f"WARNING: preview fell back to the original file ({upload.preview.fallback})", err=True)
    else:
        typer.echo(f"Preview: {preview_path}")
    typer.echo(f"Manifest: {manifest_path}")
    if keyfile:
        keys.save_key(keyfile, upload.key)
        typer.echo(f"Key saved to {keyfile} (fingerprint {keys.key_fingerprint(upload.key)})")
    else:
        typer.echo(f"Key: {upload.key}")


@app.command("preview")
def preview(
    input: str = typer.Argument(..., help="Path to the media file"),
    media_type: str = typer.Option(..., "-t", "--media-type", help="audio, visual, vfx, sfx or 3d"),
    output: str = typer.Option("", "-o", "--output", help="Path for the preview file"),
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Generate only the degraded preview of a media file."""
    cfg = _setup(verbose, config)
    tag = _parse_tag(media_type)
    media = _load_media(input)
    artifact = generate_preview_sync(media, tag, cfg.preview)
    out_path = Path(output) if output else Path(input).parent / artifact.filename
    media_io.write_bytes(str(out_path), artifact.data)
    if artifact.is_passthrough:
        typer.echo(f"WARNING: preview fell back to the original file ({artifact.fallback})", err=True)
    typer.echo(f"Preview ({artifact.mime_type}, {artifact.size} bytes): {out_path}")


@app.command("unlock")
def unlock(
    input: str = typer.Argument(..., help="Path to the encrypted asset"),
    key: str = typer.Option("", "--key", help="Decryption key (hex)"),
    keyfile: str = typer.Option("", "-k", "--keyfile", help="Path to a file holding the key"),
    mime_type: str = typer.Option("", "--mime-type", help="MIME type from the asset metadata"),
    media_type: str = typer.Option("", "-t", "--media-type", help="Media type used when no MIME type is known"),
    name: str = typer.Option("", "--name", help="Base name for the decrypted file"),
    output_dir: str = typer.Option("", "-d", "--output-dir", help="Directory for the decrypted file"),
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Decrypt a purchased asset with its released key."""
    _setup(verbose, config)
    input_path = Path(input)
    if not input_path.exists():
        raise typer.BadParameter(f"Input file not found: {input}")
    if keyfile:
        try:
            key = keys.load_key(keyfile)
        except (OSError, InvalidKeyError) as e:
            raise typer.BadParameter(f"Cannot read key file {keyfile}: {e}", param_hint="--keyfile")
    try:
        blob = media_io.read_bytes(str(input_path))
    except MediaReadError as e:
        raise typer.BadParameter(str(e))

    try:
        asset = access.decrypt_asset(
            blob,
            key,
            mime_type=mime_type or None,
            media_type=media_type or None,
            name=name or None,
        )
    except KeyNotAvailable as e:
        typer.echo(f"{e}", err=True)
        raise typer.Exit(code=2)
    except DecryptionError as e:
        typer.echo(f"ERROR: Decryption failed: {e}", err=True)
        raise typer.Exit(code=1)

    out_dir = Path(output_dir) if output_dir else input_path.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    target = asset.save(out_dir)
    typer.echo(f"Decrypted {asset.size} bytes ({asset.mime_type}) -> {target}")


@app.command("validate")
def validate(
    input: str = typer.Argument(..., help="Path to the media file"),
    media_type: str = typer.Option(..., "-t", "--media-type", help="audio, visual, vfx, sfx or 3d"),
    max_size_mb: float | None = typer.Option(None, "--max-size-mb", help="Size limit (default: configured limit)"),
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Check that a file is acceptable for the given media type."""
    cfg = _setup(verbose, config)
    media = _load_media(input)
    limit = max_size_mb if max_size_mb is not None else cfg.max_upload_mb
    result = validation.validate_file(media, media_type, limit)
    if not result.is_valid:
        typer.echo(f"[FAIL] {result.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {media.filename} is a valid {media_type} upload")


@app.command("show-status")
def show_status(
    verbose: int = VerboseOption,
    config: str | None = ConfigOption,
):
    """Show capabilities and configured limits."""
    cfg = _setup(verbose, config)
    p = cfg.preview
    typer.echo("\n" + "=" * 60)
    typer.echo("assetdrm status")
    typer.echo("=" * 60)

    typer.echo("\n[COMMANDS] Available:")
    typer.echo("  * Keys:        keygen")
    typer.echo("  * Upload:      protect, preview, validate")
    typer.echo("  * Purchase:    unlock")

    typer.echo("\n[CRYPTO]")
    typer.echo(f"  * Cipher:     AES-256-GCM, {cfg.chunk_size}-byte authenticated frames")
    typer.echo("  * Keys:       256-bit, hex encoded")

    typer.echo("\n[PREVIEWS]")
    typer.echo(f"  * Image:      <= {p.image_max_width}x{p.image_max_height}, JPEG quality {p.image_quality}")
    typer.echo(f"  * Audio:      first {p.audio_max_seconds:g}s, mono, beep every {p.beep_interval:g}s")
    typer.echo(f"  * Video:      {len(p.video_sample_points)}-frame contact sheet")
    typer.echo(f"  * 3D:         {len(p.model_views)} views (OBJ, STL, glTF/GLB)")
    tools = "available" if ffmpeg.tools_available(p.ffmpeg_binary, p.ffprobe_binary) else "NOT FOUND"
    typer.echo(f"  * ffmpeg:     {tools} ({p.ffmpeg_binary}, {p.ffprobe_binary})")

    typer.echo("\n[LIMITS]")
    typer.echo(f"  * Max upload: {cfg.max_upload_mb} MB")
    typer.echo("\n" + "=" * 60 + "\n")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
