"""Main entry point for the chip-piano CLI."""

import threading
import time
from collections import Counter
from typing import List, Optional, Sequence

import click

from ..logger import get_logger
from ..logging_config import setup_logging
from ..note_types import NoteEvent, RegisterTick
from ..note_utils import get_note_name
from ..core.config import ConfigManager
from ..core.factory import ComponentFactory
from ..roll.preprocess import TrackPreanalyzer
from ..roll.visualization_state import VisualizationState
from ..trace import TraceFormatError, count_ticks, load_trace

logger = get_logger(__name__)

REGIONS = click.Choice(["ntsc", "pal"], case_sensitive=False)
EXPANSIONS = click.Choice(["none", "vrc6"], case_sensitive=False)


def format_event(event: NoteEvent, channel_names: Sequence[str], use_flats: bool = False) -> str:
    name = channel_names[event.channel] if event.channel < len(channel_names) else str(event.channel)
    return (
        f"{event.start_time:9.3f}s  {name:>4}  {get_note_name(event.note, use_flats):<4} "
        f"{event.duration:7.3f}s  vel {event.velocity:.2f}"
    )


def print_summary(events: List[NoteEvent], channel_names: Sequence[str], list_notes: bool, use_flats: bool) -> None:
    if list_notes:
        for event in events:
            click.echo(format_event(event, channel_names, use_flats))
    per_channel = Counter(event.channel for event in events)
    click.echo(f"{len(events)} notes")
    for channel, name in enumerate(channel_names):
        click.echo(f"  {name:>4}: {per_channel.get(channel, 0)}")


def _show(state: VisualizationState, time_source=None, keep_running=None) -> None:
    # pygame opens a display, only import it when a window is wanted
    from ..ui.pygame_view import show

    show(state, time_source=time_source, keep_running=keep_running)


def play_ticks(state: VisualizationState, ticks: Sequence[RegisterTick], stop: threading.Event, speed: float = 1.0) -> None:
    """Apply ticks to the state at playback speed until done or stopped."""
    started = time.monotonic()
    for tick in ticks:
        delay = tick.time / speed - (time.monotonic() - started)
        if delay > 0 and stop.wait(delay):
            return
        state.apply_tick(tick)
    state.finish()


def preanalyze_and_play(
    state: VisualizationState,
    preanalyzer: TrackPreanalyzer,
    ticks: Sequence[RegisterTick],
    stop: threading.Event,
    speed: float = 1.0,
) -> None:
    """Pre-analyze the whole trace, then play it.

    The pre-analyzer should write the state's progress counter so the viewer
    can show how far it got.
    """
    try:
        preanalyzer.analyze_trace(ticks)
    except ValueError as e:
        logger.error(f"Cannot play trace: {e}")
        return
    if not stop.is_set():
        play_ticks(state, ticks, stop, speed)


def analyze_audio(factory: ComponentFactory, audio_file: str, preanalyzer: TrackPreanalyzer, **pcm_overrides) -> List[NoteEvent]:
    """Run the raw-PCM fallback over a whole file as fast as it can be read."""
    source = factory.create_wav_source(audio_file, realtime=False)
    pcm = factory.config_manager.get_config("pcm_fallback")
    return preanalyzer.analyze_pcm(
        source.iter_blocks(),
        source.sample_rate,
        factory.create_pcm_classifier(**pcm_overrides),
        primary_channel=pcm["primary_channel"],
        total_frames=source.frames,
    )


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config-dir", type=click.Path(file_okay=False), default=None,
              help="Configuration directory (default: ~/.config/chip_piano)")
@click.pass_context
def cli(ctx, debug, config_dir):
    """Piano-roll visualization of chiptune channels"""
    setup_logging("DEBUG" if debug else "WARNING")
    ctx.obj = ComponentFactory(ConfigManager(config_dir))


@cli.command()
@click.argument("trace_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--region", type=REGIONS, default=None, help="CPU clock region")
@click.option("--expansion", type=EXPANSIONS, default=None, help="Expansion sound chip")
@click.option("--view", is_flag=True, help="Play the trace in a pygame window")
@click.option("--speed", default=1.0, type=click.FloatRange(min=0.01), help="Playback speed with --view")
@click.option("--notes", "list_notes", is_flag=True, help="List every note event")
@click.option("--flats", is_flag=True, help="Use flat note names instead of sharps")
@click.pass_obj
def replay(factory, trace_file, region, expansion, view, speed, list_notes, flats):
    """Turn a register trace into note events"""
    try:
        ticks = list(load_trace(trace_file))
    except TraceFormatError as e:
        raise click.ClickException(str(e))
    logger.info(f"Loaded {len(ticks)} ticks from {trace_file}")

    if view:
        state = factory.create_visualization_state(region, expansion)
        preanalyzer = factory.create_preanalyzer(region, expansion, progress=state.progress)
        stop = threading.Event()
        producer = threading.Thread(
            target=preanalyze_and_play, args=(state, preanalyzer, ticks, stop, speed), daemon=True
        )
        producer.start()
        try:
            _show(state)
        finally:
            stop.set()
            producer.join()
        return

    preanalyzer = factory.create_preanalyzer(region, expansion)
    try:
        events = preanalyzer.analyze_trace(ticks, total=count_ticks(trace_file))
    except ValueError as e:
        raise click.ClickException(str(e))
    print_summary(events, preanalyzer.channel_names, list_notes, flats)


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--view", is_flag=True, help="Play the file through the fallback in a pygame window")
@click.option("--notes", "list_notes", is_flag=True, help="List every note event")
@click.option("--flats", is_flag=True, help="Use flat note names instead of sharps")
@click.option("--method", type=click.Choice(["autocorrelation", "yin"]), default=None,
              help="Pitch detection method (default from config)")
@click.pass_obj
def analyze(factory, audio_file, view, list_notes, flats, method):
    """Run the raw-PCM fallback over an audio file"""
    overrides = {"pitch_method": method} if method else {}

    if view:
        state = factory.create_visualization_state(expansion="none", with_pcm=True, **overrides)
        preanalyzer = factory.create_preanalyzer(expansion="none", progress=state.progress)
        service = factory.create_pcm_service(factory.create_wav_source(audio_file, realtime=True), state)

        closed = threading.Event()

        def preanalyze_then_stream() -> None:
            analyze_audio(factory, audio_file, preanalyzer, **overrides)
            if not closed.is_set() and not service.start():
                logger.error(f"Could not stream {audio_file}")

        worker = threading.Thread(target=preanalyze_then_stream, daemon=True)
        worker.start()
        try:
            _show(
                state,
                time_source=lambda: service.transport_time,
                keep_running=lambda: worker.is_alive() or service.is_running(),
            )
        finally:
            closed.set()
            worker.join()
            service.stop()
        return

    preanalyzer = factory.create_preanalyzer(expansion="none")
    events = analyze_audio(factory, audio_file, preanalyzer, **overrides)
    print_summary(events, preanalyzer.channel_names, list_notes, flats)


@cli.command()
@click.option("--device", type=int, default=None, help="Audio input device ID")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
@click.option("--view", is_flag=True, help="Show the piano roll in a pygame window")
@click.option("--flats", is_flag=True, help="Use flat note names instead of sharps")
@click.pass_obj
def listen(factory, device, duration, view, flats):
    """Follow live audio input through the raw-PCM fallback"""
    source = factory.create_audio_input(device_id=device)
    state = factory.create_visualization_state(expansion="none", with_pcm=True)
    names = state.channel_names

    def on_note_on(event: NoteEvent) -> None:
        click.echo(f"{event.start_time:9.3f}s  {names[event.channel]:>4}  {get_note_name(event.note, flats)}")

    service = factory.create_pcm_service(source, state)
    if not view:
        state.events.on_note_on(on_note_on)
    if not service.start():
        raise click.ClickException("Could not start audio input")

    deadline: Optional[float] = time.monotonic() + duration if duration else None

    def keep_running() -> bool:
        return service.is_running() and (deadline is None or time.monotonic() < deadline)

    try:
        if view:
            _show(state, time_source=lambda: service.transport_time, keep_running=keep_running)
        else:
            click.echo("Listening, press Ctrl+C to stop")
            while keep_running():
                time.sleep(0.1)
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()
    click.echo(f"{state.history_size()} notes in history")


@cli.command()
def devices():
    """List audio input devices"""
    from ..audio.audio_input import list_input_devices

    for device in list_input_devices():
        click.echo(
            f"{device['id']:3d}  {device['name']}  "
            f"({device['max_input_channels']} in, {device['default_samplerate']:.0f}Hz)"
        )


if __name__ == "__main__":
    cli()
