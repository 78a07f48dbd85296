"""Flask CLI commands for admin operations."""
import click


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        from imagegate.extensions import db

        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("register-entity")
    @click.argument("entity_type")
    @click.argument("entity_id")
    @click.option("--owner", default=None, help="User ID that owns the entity")
    def register_entity(entity_type, entity_id, owner):
        """Register an entity so it can hold an image."""
        from imagegate.models.enums import EntityType
        from imagegate.services import slot_service

        try:
            entity_type = EntityType.parse(entity_type)
        except ValueError as e:
            raise click.BadParameter(str(e))
        slot = slot_service.register_entity(entity_type, entity_id, owner_user_id=owner)
        click.echo(f"Registered {slot.entity_type}/{slot.entity_id} (owner: {slot.owner_user_id or 'catalog'})")

    @app.cli.command("sweep-pending")
    @click.option("--enqueue", is_flag=True, help="Run on the worker queue instead")
    def sweep_pending(enqueue):
        """Remove expired and consumed pending uploads."""
        import imagegate.extensions as ext
        from imagegate.services.pending_store import get_pending_store

        if enqueue:
            ext.task_queue.enqueue("imagegate.workers.maintenance.sweep_expired_uploads")
            click.echo("Sweep enqueued.")
            return
        removed = get_pending_store().sweep_expired()
        click.echo(f"Removed {removed} pending uploads.")

    @app.cli.command("stats")
    def stats():
        """Show asset and pending upload counts."""
        from sqlalchemy import func
        from imagegate.extensions import db
        from imagegate.models import ImageAsset, PendingUpload, EntityImageSlot

        rows = (
            db.session.query(ImageAsset.entity_type, func.count(ImageAsset.id))
            .group_by(ImageAsset.entity_type)
            .all()
        )
        click.echo(f"Total assets: {sum(count for _, count in rows)}")
        for entity_type, count in sorted(rows):
            click.echo(f"  {entity_type}: {count}")

        bound = EntityImageSlot.query.filter(EntityImageSlot.image_asset_id.isnot(None)).count()
        click.echo(f"Slots with an image: {bound}")
        open_uploads = PendingUpload.query.filter_by(consumed=False).count()
        click.echo(f"Unconsumed pending uploads (database backend): {open_uploads}")
