from crash_fixture.main import entrypoint

entrypoint()
