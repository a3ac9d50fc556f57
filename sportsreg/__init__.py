import functools
import os

from flask import Flask

from .config import load_config


def _range_loader(app):
    from .ranges import load_ranges, ranges_from_mapping

    def load():
        mapping = app.config.get("CHEST_RANGES")
        if mapping is not None:
            return ranges_from_mapping(mapping)
        return load_ranges(app.config["RANGE_FILE"])

    return load


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    from .datastore import get_store
    from .registry import Registry
    from .uploads import delete_photo

    store = get_store(app.config)
    registry = Registry(
        store,
        _range_loader(app),
        photo_remover=functools.partial(delete_photo, folder=app.config["UPLOAD_FOLDER"]),
    )

    # An unreadable record store aborts startup; continuing would overwrite it
    app.logger.info("Loading registrations from %s backend", store.name)
    counters = registry.start()
    app.logger.info("Chest counters reconciled for %d schools", len(counters))
    if not counters:
        app.logger.warning("No chest ranges configured; registrations will be rejected")
    app.extensions["registry"] = registry

    from . import routes  # type: ignore
    app.register_blueprint(routes.bp)

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 3000))
    create_app().run(host='0.0.0.0', port=port)
