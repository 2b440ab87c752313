"""
External media tools: heif-convert, ffmpeg and ffprobe.

All invocations go through ``CommandRunner`` which bounds how many tools run
at once and kills a process that outlives its timeout.
"""
import asyncio
import json
import shutil
import weakref
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import get_settings
from .logging_config import media_logger

JPEG_MAGIC = b"\xff\xd8\xff"

HDR_TRANSFERS = {"smpte2084", "arib-std-b67"}
TONE_MAP_FILTER = (
    "zscale=t=linear:npl=100,tonemap=bt2390:desat=0,"
    "zscale=t=bt709:m=bt709:r=tv,format=yuv420p"
)


class CommandError(Exception):
    """An external tool could not be started, failed, or timed out."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    pass


def _stderr_tail(stderr: bytes, limit: int = 500) -> str:
    text = stderr.decode("utf-8", errors="replace").strip()
    return text[-limit:]


class CommandRunner:
    """Run external commands with a concurrency cap and a timeout."""

    def __init__(self, max_concurrency: int = 2, timeout: float = 120.0):
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def run(self, args: Sequence[str], timeout: Optional[float] = None) -> bytes:
        """Run ``args`` and return stdout. Raises ``CommandError`` on any failure."""
        program = args[0]
        timeout = self.timeout if timeout is None else timeout

        async with self._semaphore:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise CommandError(f"{program} failed to start: {e}") from e

            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise CommandTimeoutError(f"{program} timed out after {timeout:g}s")
            except asyncio.CancelledError:
                if proc.returncode is None:
                    proc.kill()
                    await proc.wait()
                raise

        if proc.returncode != 0:
            details = _stderr_tail(stderr)
            message = f"{program} exited with code {proc.returncode}"
            if details:
                message = f"{message} ({details})"
            raise CommandError(message, returncode=proc.returncode, stderr=details)

        return stdout


# A Semaphore binds to the first loop that waits on it: one runner per loop.
_loop_runners: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, CommandRunner]" = weakref.WeakKeyDictionary()


def default_runner() -> CommandRunner:
    """Runner shared by everything on the current event loop."""
    loop = asyncio.get_running_loop()
    runner = _loop_runners.get(loop)
    if runner is None:
        settings = get_settings()
        runner = CommandRunner(
            max_concurrency=settings.command_max_concurrency,
            timeout=settings.command_timeout_seconds,
        )
        _loop_runners[loop] = runner
    return runner


def is_jpeg_file(path: Path) -> bool:
    with open(path, "rb") as f:
        return f.read(3) == JPEG_MAGIC


def copy_file(source: Path, destination: Path):
    shutil.copyfile(source, destination)


# ============================================================
# FFPROBE
# ============================================================

async def probe_media(path: Path, runner: CommandRunner) -> Dict[str, Any]:
    """Full ffprobe JSON (format + streams)."""
    stdout = await runner.run([
        "ffprobe", "-v", "error",
        "-print_format", "json",
        "-show_format", "-show_streams",
        str(path),
    ])
    try:
        return json.loads(stdout.decode("utf-8"))
    except ValueError as e:
        raise CommandError("ffprobe output could not be parsed.") from e


async def best_image_stream(path: Path, runner: CommandRunner) -> Optional[Dict[str, Any]]:
    """
    Pick the largest non-grayscale stream of a HEIF container.

    HEIC files from phones hold the image as tiles plus thumbnail and depth
    streams; ffmpeg needs the right one mapped explicitly.
    """
    try:
        stdout = await runner.run([
            "ffprobe", "-v", "error",
            "-select_streams", "v",
            "-show_entries", "stream=index,width,height,color_transfer,color_primaries,color_space,pix_fmt",
            "-of", "json",
            str(path),
        ])
        streams = json.loads(stdout.decode("utf-8")).get("streams") or []
    except (CommandError, ValueError):
        return None

    candidates = [s for s in streams if isinstance(s.get("width"), int) and isinstance(s.get("height"), int)]
    if not candidates:
        return None

    colour = [s for s in candidates if not str(s.get("pix_fmt") or "").lower().startswith("gray")]
    pool = colour or candidates
    return max(pool, key=lambda s: s["width"] * s["height"])


def build_ffmpeg_jpeg_args(stream: Optional[Dict[str, Any]]) -> Tuple[List[str], List[str], bool]:
    """Return (args, plain_args, is_hdr) for a single-frame JPEG export."""
    map_args = ["-map", f"0:{stream['index']}"] if stream and isinstance(stream.get("index"), int) else []
    base_args = map_args + ["-frames:v", "1", "-q:v", "2"]

    transfer = str((stream or {}).get("color_transfer") or "").lower()
    space = str((stream or {}).get("color_space") or "").lower()
    primaries = str((stream or {}).get("color_primaries") or "").lower()

    is_hdr = (
        transfer in HDR_TRANSFERS
        or "bt2020" in space
        or "bt2020" in primaries
        or "smpte2084" in primaries
    )
    if is_hdr:
        return ["-vf", TONE_MAP_FILTER] + base_args, base_args, True

    needs_colour_fix = (
        (primaries and primaries != "bt709")
        or (transfer and transfer != "bt709")
        or (space and "bt709" not in space)
    )
    if needs_colour_fix:
        colour_filter = (
            f"zscale=in_primaries={primaries or 'bt709'}"
            f":in_transfer={transfer or 'bt709'}"
            f":in_matrix={space or 'bt709'}"
            ":primaries=bt709:transfer=bt709:matrix=bt709:range=full,format=yuv420p"
        )
        return ["-vf", colour_filter] + base_args, base_args, False

    return base_args, base_args, False


async def run_ffmpeg(input_path: Path, output_path: Path, extra_args: Sequence[str], runner: CommandRunner):
    await runner.run(
        ["ffmpeg", "-y", "-loglevel", "error", "-i", str(input_path), *extra_args, str(output_path)]
    )


# ============================================================
# CONVERSIONS
# ============================================================

async def convert_heic_to_jpeg(input_path: Path, output_path: Path, runner: Optional[CommandRunner] = None):
    """HEIC/HEIF -> JPEG via heif-convert, falling back to ffmpeg."""
    runner = runner or default_runner()
    try:
        await runner.run(["heif-convert", "-q", "90", str(input_path), str(output_path)])
        return
    except CommandError as heif_error:
        media_logger.info("heif-convert failed, trying ffmpeg", path=str(input_path), error=str(heif_error))
        heif_message = str(heif_error)

    stream = await best_image_stream(input_path, runner)
    args, plain_args, is_hdr = build_ffmpeg_jpeg_args(stream)
    try:
        try:
            await run_ffmpeg(input_path, output_path, args, runner)
        except CommandError:
            if not is_hdr:
                raise
            # zscale may be missing from the ffmpeg build
            await run_ffmpeg(input_path, output_path, plain_args, runner)
    except CommandError as ffmpeg_error:
        raise CommandError(f"{heif_message}; {ffmpeg_error}") from ffmpeg_error


async def generate_video_poster(input_path: Path, output_path: Path, runner: Optional[CommandRunner] = None):
    """Grab a 960px-wide poster frame half a second into the video."""
    runner = runner or default_runner()
    await run_ffmpeg(
        input_path,
        output_path,
        ["-ss", "0.5", "-frames:v", "1", "-q:v", "2", "-vf", "scale=960:-2"],
        runner,
    )
