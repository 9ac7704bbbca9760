"""Stacks core package.

Modules:
- library_lifecycle: filesystem scan into series and books
- book_lifecycle: analysis, thumbnails, page delivery, deletion
- tasks / task_queue / task_emitter: background task messages and transport
- task_handler / workers: task dispatch and the worker thread pool
- metadata, artwork, importer, converter, search: task-driven lifecycles
- monitor: Watchdog-based filesystem monitoring
- config: INI parsing and config object
"""
