import logging
import shutil
import subprocess
import threading
from collections import deque
from typing import List, Optional, Sequence

from slideshow.exceptions import EncodeError
from slideshow.services.video_gen.filter_graph import PIXEL_FORMAT, Number, build_filter_complex, format_seconds

logger = logging.getLogger(__name__)

VIDEO_CODEC = "libx264"
STDERR_TAIL_LINES = 20
READER_JOIN_SECONDS = 5


def resolve_ffmpeg(path: str) -> str:
    resolved = shutil.which(path)
    if not resolved:
        raise RuntimeError(f"FFmpeg binary not found: {path}")
    return resolved


def build_ffmpeg_args(image_paths: Sequence[str], duration: Number) -> List[str]:
    args: List[str] = ["-y"]
    for path in image_paths:
        args.extend(["-loop", "1", "-t", format_seconds(duration), "-i", str(path)])
    args.extend(
        [
            "-filter_complex",
            build_filter_complex(len(image_paths), duration),
            "-map",
            "[v]",
            "-c:v",
            VIDEO_CODEC,
            "-pix_fmt",
            PIXEL_FORMAT,
        ]
    )
    return args


def _pump_stderr(stream, tail: deque) -> None:
    with stream:
        for line in stream:
            line = line.rstrip()
            if not line:
                continue
            tail.append(line)
            logger.info("FFmpeg output: %s", line)


def run_ffmpeg(
    ffmpeg_bin: str,
    args: Sequence[str],
    output_path: str,
    timeout_seconds: Optional[float] = None,
) -> None:
    cmd = [ffmpeg_bin, *args, output_path]
    logger.info("FFmpeg command: %s", " ".join(cmd))

    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
    )
    tail: deque = deque(maxlen=STDERR_TAIL_LINES)
    reader = threading.Thread(target=_pump_stderr, args=(proc.stderr, tail), daemon=True)
    reader.start()

    timed_out = False
    try:
        returncode = proc.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        proc.kill()
        returncode = proc.wait()
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        # A grandchild can hold the pipe open after ffmpeg exits; the reader
        # closes the stream itself once it sees EOF.
        reader.join(timeout=READER_JOIN_SECONDS)
        if reader.is_alive():
            logger.warning("FFmpeg stderr still open %ss after exit, not waiting for it", READER_JOIN_SECONDS)

    if timed_out:
        logger.error("FFmpeg process killed after %ss", timeout_seconds)
        raise EncodeError(None, "\n".join(tail), timed_out=True)

    logger.info("FFmpeg process completed with code %s", returncode)
    if returncode != 0:
        raise EncodeError(returncode, "\n".join(tail))
