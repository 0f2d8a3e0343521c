"""Console script for video_prompts."""

import typer

from video_prompts.analyze.cli import check, compare, describe, flow
from video_prompts.extract_frames.cli import extract, probe
from video_prompts.storyboard.cli import storyboard, timeline

__version__ = "0.1.0"

app = typer.Typer(help="Turn videos into frames and frames into structured prompts.")


@app.command()
def version():
    """Display version information."""
    typer.echo(f"Video Prompts v{__version__}")
    raise typer.Exit()


app.command()(probe)
app.command()(extract)
app.command()(check)
app.command()(describe)
app.command()(compare)
app.command()(flow)
app.command()(storyboard)
app.command()(timeline)


if __name__ == "__main__":
    app()
