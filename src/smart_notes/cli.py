"""
============================================================================
Smart Notes CLI
============================================================================
Command-line interface for capturing, organizing and searching notes.

Usage:
    smart-notes add "Standup: discussed the Q3 roadmap with the team"
    smart-notes search "travel ideas last month"
    smart-notes ask "what did I write about Japan yesterday?"
    smart-notes related <note-id>
    smart-notes reorganize <note-id>
    smart-notes status
============================================================================
"""

import asyncio
import json
import logging
import sys

import click

from smart_notes.config import Settings
from smart_notes.db import Neo4jConnection, Neo4jNoteStore
from smart_notes.enrichment import NoteJob
from smart_notes.errors import NoteNotFoundError
from smart_notes.main import LOG_FORMAT, build_services
from smart_notes.models import NoteCreate, NoteType, SearchResponse, SearchResult


class CLIContext:
    def __init__(self):
        self.settings = Settings()
        self.connection = Neo4jConnection(self.settings.neo4j)
        self.store = Neo4jNoteStore(self.connection)
        self.services = build_services(self.settings, self.store)

    async def load_models(self) -> None:
        await self.services.embedder.load()

    def close(self):
        self.connection.close()


def _result_dict(result: SearchResult) -> dict:
    return result.model_dump(mode="json", exclude={"embedding"})


def _echo_results(response: SearchResponse, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps({
            'num_results': len(response.results),
            'temporal_filter': response.temporal_filter.description if response.temporal_filter else None,
            'interpreted_query': response.interpreted_query,
            'results': [_result_dict(r) for r in response.results],
        }, indent=2, default=str))
        return

    if response.interpreted_query:
        click.echo(f"\nInterpreted as: \"{response.interpreted_query}\"")
    if response.temporal_filter:
        click.echo(f"Time window: {response.temporal_filter.description}")
    click.echo(f"Found {len(response.results)} result(s)\n")

    for i, result in enumerate(response.results, 1):
        click.echo(f"{i}. {result.title or 'Untitled Note'}")
        click.echo(f"   Score: {result.relevance_score:.3f} ({result.match_type.value})")
        click.echo(f"   ID: {result.id}")
        click.echo(f"   Created: {result.created_at:%Y-%m-%d %H:%M}")
        click.echo(f"   Content: {result.content[:150]}")
        click.echo()


@click.group()
@click.option('--log-level', default=None, help='Override the configured log level')
@click.pass_context
def cli(ctx, log_level):
    """Smart Notes CLI - capture, organize and search notes."""
    ctx.obj = CLIContext()
    logging.basicConfig(
        level=getattr(logging, (log_level or ctx.obj.settings.app.log_level).upper()),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


@cli.command()
@click.argument('content')
@click.option('--type', 'note_type', type=click.Choice([t.value for t in NoteType]),
              default=NoteType.NOTE.value, help='Capture type (voice/scan skip classification)')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def add(ctx, content, note_type, json_output):
    """Create a note and wait for it to be organized (use @file.txt to read from file)."""
    services = ctx.obj.services

    async def _add():
        await ctx.obj.load_models()
        note = await services.store.create(NoteCreate(content=content, type=NoteType(note_type)))
        await services.queue.enqueue(NoteJob(note_id=note.id, content=note.content))
        await services.queue.join()
        return await services.store.get(note.id), await services.store.list_tags(note.id)

    try:
        if content.startswith('@'):
            with open(content[1:], 'r') as f:
                content = f.read()

        note, tags = asyncio.run(_add())

        if json_output:
            data = note.model_dump(mode="json", exclude={"embedding"})
            data['tags'] = [tag.name for tag in tags]
            click.echo(json.dumps(data, indent=2, default=str))
        else:
            click.echo(f"\n✓ Created note: {note.id}")
            click.echo(f"  Title: {note.title}")
            click.echo(f"  Type: {note.type.value}")
            click.echo(f"  Status: {note.ai_status.value}")
            click.echo(f"  Tags: {', '.join(tag.name for tag in tags)}")
            if note.ai_error:
                click.echo(f"  Error: {note.ai_error}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


@cli.command()
@click.argument('query')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def search(ctx, query, json_output):
    """Hybrid keyword + semantic search with time phrases ("last week")."""
    async def _search():
        await ctx.obj.load_models()
        return await ctx.obj.services.retrieval.search_enhanced(query)

    try:
        _echo_results(asyncio.run(_search()), json_output)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


@cli.command()
@click.argument('query')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def ask(ctx, query, json_output):
    """Natural-language search, interpreted by the LLM when available."""
    async def _ask():
        await ctx.obj.load_models()
        return await ctx.obj.services.retrieval.ask(query)

    try:
        _echo_results(asyncio.run(_ask()), json_output)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


@cli.command()
@click.argument('note_id')
@click.option('--limit', default=5, type=int, help='Maximum number of related notes')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def related(ctx, note_id, limit, json_output):
    """Notes semantically related to NOTE_ID."""
    async def _related():
        await ctx.obj.load_models()
        return await ctx.obj.services.retrieval.find_related(note_id, limit=limit)

    try:
        _echo_results(SearchResponse(results=asyncio.run(_related())), json_output)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


@cli.command()
@click.argument('note_id')
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def reorganize(ctx, note_id, json_output):
    """Re-run AI organization for NOTE_ID from scratch."""
    services = ctx.obj.services

    async def _reorganize():
        await ctx.obj.load_models()
        await services.queue.reorganize(note_id)
        await services.queue.join()
        return await services.store.get(note_id)

    try:
        note = asyncio.run(_reorganize())
        if json_output:
            click.echo(json.dumps(note.model_dump(mode="json", exclude={"embedding"}), indent=2, default=str))
        else:
            click.echo(f"\n✓ Reorganized {note.id}: {note.title} ({note.type.value}, {note.ai_status.value})")

    except NoteNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


@cli.command()
@click.option('--json-output', is_flag=True, help='Output as JSON')
@click.pass_context
def status(ctx, json_output):
    """Queue state and store health."""
    try:
        queue_status = ctx.obj.services.queue.get_status()
        health = ctx.obj.connection.health_check()

        if json_output:
            click.echo(json.dumps({
                'queue': {
                    'is_processing': queue_status.is_processing,
                    'current_note_id': queue_status.current_note_id,
                    'queued': queue_status.queued,
                    'pending_while_editing': queue_status.pending_while_editing,
                    'generation': queue_status.generation,
                },
                'store': health,
                'generator_ready': ctx.obj.services.generator.is_ready,
            }, indent=2, default=str))
        else:
            click.echo(f"\nStore: {health['status']}")
            if 'version' in health:
                click.echo(f"  Neo4j {health['version']} ({health['note_count']} notes)")
            click.echo(f"Queue: {queue_status.queued} queued, "
                       f"{'processing ' + queue_status.current_note_id if queue_status.is_processing else 'idle'}")
            click.echo(f"Generator: {'ready' if ctx.obj.services.generator.is_ready else 'unavailable'}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        ctx.obj.close()


if __name__ == '__main__':
    cli()
