"""CLI interface with subcommand routing onto the pipeline workflows."""

import argparse
import json
import logging
import sys

from emcee_producer.constants import CHUNK_TARGET_WORDS, DB_PATH, NARRATOR_VOICE, VERSION
from emcee_producer.models import Result
from emcee_producer.pipeline import PipelineOrchestrator
from emcee_producer.storage import Database


def _orchestrator(args) -> PipelineOrchestrator:
    db = Database(args.db)
    db.init_schema()
    return PipelineOrchestrator(db)


def _finish(result: Result) -> dict:
    """Print the message (or error) and return data; exit 1 on failure."""
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        if result.message:
            print(result.message, file=sys.stderr)
        raise SystemExit(1)
    if result.message:
        print(result.message)
    return result.data or {}


def _print_layout(layout: dict) -> None:
    print(f"Layout v{layout['version']} ({layout['source']}), {layout['totalDuration']} minutes:")
    for seg in layout["segments"]:
        clock = ""
        if seg.get("startTime"):
            clock = f"  {seg['startTime']} - {seg.get('endTime', '')}"
        print(f"  {seg['order']:>2}. {seg['name']:<28} {seg['type']:<14} {seg['duration']:>4} min{clock}  [{seg['id']}]")


def _print_script(segments: list[dict]) -> None:
    for seg in segments:
        preview = seg["content"][:60].replace("\n", " ")
        print(f"  #{seg['id']:<5} order={seg['order']:<8} {seg['segment_type']:<22} {seg['timing']:>5}s  {seg['status']:<10} {preview}")


def cmd_new(args):
    """Create an event."""
    result = _orchestrator(args).create_event(
        args.title, args.type, duration_minutes=args.duration, starts_at=args.start,
    )
    event = _finish(result)["event"]
    print(f"Run 'emcee layout {event['event_id']}' to build its program.")


def cmd_layout(args):
    """Generate (or regenerate) the event layout."""
    data = _finish(_orchestrator(args).generate_layout(args.event_id))
    _print_layout(data["layout"])


def cmd_script(args):
    """Generate script segments from the layout."""
    data = _finish(_orchestrator(args).generate_script_from_layout(
        args.event_id, chunk=not args.no_chunk, target_words=args.target_words,
    ))
    _print_script(data["segments"])


def cmd_chunk(args):
    """Chunk stored script segments (all of an event, or one segment)."""
    orchestrator = _orchestrator(args)
    if args.segment is not None:
        data = _finish(orchestrator.chunk_segment(args.segment, target_words=args.target_words))
        _print_script(data["chunks"])
        return
    if args.event_id is None:
        print("Error: 'chunk' requires an event id or --segment", file=sys.stderr)
        raise SystemExit(1)
    _finish(orchestrator.chunk_all_segments(args.event_id, target_words=args.target_words))


def cmd_schedule(args):
    """Assign clock times to layout segments."""
    data = _finish(_orchestrator(args).schedule_layout(args.event_id, start=args.start, persist=args.save))
    _print_layout(data["layout"])


def _parse_properties(raw):
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        print(f"Error: --props is not valid JSON: {e}", file=sys.stderr)
        raise SystemExit(1)
    if not isinstance(value, dict):
        print("Error: --props must be a JSON object", file=sys.stderr)
        raise SystemExit(1)
    return value


def cmd_add_segment(args):
    """Add a segment to the layout."""
    data = _finish(_orchestrator(args).add_segment(
        args.event_id, args.name, args.type, args.duration,
        description=args.description, order=args.order,
        custom_properties=_parse_properties(args.props),
    ))
    _print_layout(data["layout"])


def cmd_update_segment(args):
    """Update fields of a layout segment."""
    updates = {}
    for key in ("name", "type", "description", "duration", "order"):
        value = getattr(args, key)
        if value is not None:
            updates[key] = value
    props = _parse_properties(args.props)
    if props is not None:
        updates["custom_properties"] = props
    data = _finish(_orchestrator(args).update_segment(args.event_id, args.segment_id, updates))
    _print_layout(data["layout"])


def cmd_delete_segment(args):
    """Delete a layout segment."""
    data = _finish(_orchestrator(args).delete_segment(args.event_id, args.segment_id))
    _print_layout(data["layout"])


def cmd_show(args):
    """Show an event's layout and script."""
    orchestrator = _orchestrator(args)
    layout_result = orchestrator.get_layout(args.event_id)
    if layout_result.success:
        _print_layout(layout_result.data["layout"])
    else:
        print(f"Layout: {layout_result.error}")
    data = _finish(orchestrator.get_script(args.event_id))
    print(f"Script: {len(data['segments'])} segments")
    _print_script(data["segments"])


def cmd_render(args):
    """Render the script to MP3 files."""
    _finish(_orchestrator(args).render_script_audio(args.event_id, args.output, voice=args.voice))


def cmd_rebuild_doc(args):
    """Rebuild the layout document from the layout tables."""
    _finish(_orchestrator(args).rebuild_layout_document(args.event_id))


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="emcee",
        description="Emcee Producer — event programs, emcee scripts and TTS-ready chunks",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--db", default=DB_PATH, help=f"SQLite database path (default: {DB_PATH})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline warnings and details")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # new
    new_parser = subparsers.add_parser("new", help="Create an event")
    new_parser.add_argument("title", help="Event title")
    new_parser.add_argument("--type", default="general", help="Event type, e.g. 'tech conference'")
    new_parser.add_argument("--duration", type=int, help="Total minutes (default depends on type)")
    new_parser.add_argument("--start", help="Start time, ISO format (2025-03-01T09:00)")
    new_parser.set_defaults(func=cmd_new)

    # layout
    layout_parser = subparsers.add_parser("layout", help="Generate the event layout")
    layout_parser.add_argument("event_id", help="Event id")
    layout_parser.set_defaults(func=cmd_layout)

    # script
    script_parser = subparsers.add_parser("script", help="Generate the script from the layout")
    script_parser.add_argument("event_id", help="Event id")
    script_parser.add_argument("--no-chunk", action="store_true", help="Skip chunking after generation")
    script_parser.add_argument("--target-words", type=int, default=CHUNK_TARGET_WORDS, help="Words per chunk")
    script_parser.set_defaults(func=cmd_script)

    # chunk
    chunk_parser = subparsers.add_parser("chunk", help="Chunk script segments")
    chunk_parser.add_argument("event_id", nargs="?", help="Event id (chunks every segment)")
    chunk_parser.add_argument("--segment", type=int, help="Chunk a single script segment by id")
    chunk_parser.add_argument("--target-words", type=int, default=CHUNK_TARGET_WORDS, help="Words per chunk")
    chunk_parser.set_defaults(func=cmd_chunk)

    # schedule
    schedule_parser = subparsers.add_parser("schedule", help="Assign clock times to the layout")
    schedule_parser.add_argument("event_id", help="Event id")
    schedule_parser.add_argument("--start", help="Start time, ISO format (default: event start)")
    schedule_parser.add_argument("--save", action="store_true", help="Store the times on the layout")
    schedule_parser.set_defaults(func=cmd_schedule)

    # add-segment
    add_parser = subparsers.add_parser("add-segment", help="Add a layout segment")
    add_parser.add_argument("event_id", help="Event id")
    add_parser.add_argument("name", help="Segment name")
    add_parser.add_argument("type", help="Segment type, e.g. keynote")
    add_parser.add_argument("duration", type=int, help="Minutes")
    add_parser.add_argument("--description", default="", help="Segment description")
    add_parser.add_argument("--order", type=int, help="Position (default: append)")
    add_parser.add_argument("--props", help="Custom properties as a JSON object")
    add_parser.set_defaults(func=cmd_add_segment)

    # update-segment
    update_parser = subparsers.add_parser("update-segment", help="Update a layout segment")
    update_parser.add_argument("event_id", help="Event id")
    update_parser.add_argument("segment_id", help="Layout segment id")
    update_parser.add_argument("--name")
    update_parser.add_argument("--type")
    update_parser.add_argument("--description")
    update_parser.add_argument("--duration", type=int)
    update_parser.add_argument("--order", type=int)
    update_parser.add_argument("--props", help="Custom properties as a JSON object")
    update_parser.set_defaults(func=cmd_update_segment)

    # delete-segment
    delete_parser = subparsers.add_parser("delete-segment", help="Delete a layout segment")
    delete_parser.add_argument("event_id", help="Event id")
    delete_parser.add_argument("segment_id", help="Layout segment id")
    delete_parser.set_defaults(func=cmd_delete_segment)

    # show
    show_parser = subparsers.add_parser("show", help="Show layout and script")
    show_parser.add_argument("event_id", help="Event id")
    show_parser.set_defaults(func=cmd_show)

    # render
    render_parser = subparsers.add_parser("render", help="Render the script to MP3")
    render_parser.add_argument("event_id", help="Event id")
    render_parser.add_argument("--output", default="output/audio", help="Directory for MP3 files")
    render_parser.add_argument("--voice", default=NARRATOR_VOICE, help=f"edge-tts voice (default: {NARRATOR_VOICE})")
    render_parser.set_defaults(func=cmd_render)

    # rebuild-doc
    rebuild_parser = subparsers.add_parser("rebuild-doc", help="Rebuild the layout document from the tables")
    rebuild_parser.add_argument("event_id", help="Event id")
    rebuild_parser.set_defaults(func=cmd_rebuild_doc)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
