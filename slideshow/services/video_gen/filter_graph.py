from typing import Union

OUTPUT_WIDTH = 1280
OUTPUT_HEIGHT = 720
FADE_SECONDS = 1
PIXEL_FORMAT = "yuv420p"

Number = Union[int, float]


def format_seconds(value: Number) -> str:
    """Render a time value the way ffmpeg options expect it: 3 not 3.0."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


def _scale_clause(index: int, duration: Number) -> str:
    fade_out_start = format_seconds(float(duration) - FADE_SECONDS)
    return (
        f"[{index}:v]"
        f"scale={OUTPUT_WIDTH}:{OUTPUT_HEIGHT}:force_original_aspect_ratio=decrease,"
        f"pad={OUTPUT_WIDTH}:{OUTPUT_HEIGHT}:(ow-iw)/2:(oh-ih)/2,"
        f"fade=t=in:st=0:d={FADE_SECONDS}:alpha=1,"
        f"fade=t=out:st={fade_out_start}:d={FADE_SECONDS}:alpha=1"
        f"[v{index}];"
    )


def build_filter_complex(image_count: int, duration: Number) -> str:
    """
    image_count: number of looped image inputs, in input order
    duration: seconds each image stays on screen (must leave room for the fade out)
    """
    if image_count < 1:
        raise ValueError("At least one image is required")
    if duration <= FADE_SECONDS:
        raise ValueError(f"Duration must be greater than {FADE_SECONDS} second(s)")

    scale_commands = "".join(_scale_clause(i, duration) for i in range(image_count))
    input_streams = "".join(f"[v{i}]" for i in range(image_count))
    return f"{scale_commands}{input_streams}concat=n={image_count}:v=1:a=0,format={PIXEL_FORMAT}[v]"
