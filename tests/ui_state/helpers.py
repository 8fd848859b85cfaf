from types import SimpleNamespace


def closure_map(func):
    return {var: cell for var, cell in zip(func.__code__.co_freevars, func.__closure__ or [])}


def closure_value(func, name):
    return closure_map(func)[name].cell_contents


def dummy_app():
    app = SimpleNamespace(invalidate_calls=0, result=None, exited=False)

    def invalidate():
        app.invalidate_calls += 1

    def exit(result=None):
        app.exited = True
        app.result = result

    app.invalidate = invalidate
    app.exit = exit
    return app


def dummy_event(data='', app=None):
    return SimpleNamespace(data=data, app=app or dummy_app())


def get_binding(kb, key):
    for binding in kb.bindings:
        if key in binding.keys:
            return binding
    raise AssertionError(f'Binding for {key!r} not found')
