import re
import inspect
import asyncio
import threading
from types import ModuleType
from typing import Awaitable, TypeVar, Callable, Any, AsyncIterable, Iterable
from ecs_runner.clients import AWSClients


T = TypeVar("T")


def _run_async(coro: Awaitable[T]) -> T:
    """
    Run coroutine safely even if already inside an event loop
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop and loop.is_running():
        return asyncio.run_coroutine_threadsafe(coro, loop).result()
    else:
        return asyncio.run(coro)


def _async_iter_to_sync(async_iter: AsyncIterable[T]) -> Iterable[T]:
    """
    Converts an async iterator into a sync iterator
    """
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()

    queue = asyncio.Queue(maxsize=1)
    sentinel = object()  # put in the queue when the iteration ends
    exception_holder = []

    async def produce():
        try:
            async for item in async_iter:
                await queue.put(item)
        except Exception as e:
            exception_holder.append(e)
        finally:
            await queue.put(sentinel)

    asyncio.run_coroutine_threadsafe(produce(), loop)

    def iterator():
        try:
            while True:
                future = asyncio.run_coroutine_threadsafe(queue.get(), loop)
                item = future.result()
                if item is sentinel:
                    if exception_holder:
                        raise exception_holder[0]
                    break
                yield item
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
            loop.close()

    return iterator()


async def _with_clients_async(async_func: Callable[..., Awaitable[T]], profile: str | None = None, region: str | None = None, **kwargs) -> T:
    """
    Await an ecs_runner function with a bundle of clients opened for the call only
    """
    async with AWSClients(profile=profile, region=region) as clients:
        return await async_func(clients, **kwargs)


async def _iter_with_clients_async(async_gen_func: Callable[..., AsyncIterable[T]], profile: str | None = None, region: str | None = None, **kwargs) -> AsyncIterable[T]:
    """
    Iterate over an ecs_runner async generator with a bundle of clients opened for the iteration only
    """
    async with AWSClients(profile=profile, region=region) as clients:
        async for item in async_gen_func(clients, **kwargs):
            yield item


def _function_definition_from_source(source: str) -> Iterable[str]:
    """
    Recursively extract a function definition from source
    """
    open_parenthesis: int=0
    characters = (c for c in source)
    for c in characters:
        yield c
        if c == "(":
            open_parenthesis += 1
        elif c == ")":
            open_parenthesis -= 1
            if open_parenthesis == 0:
                break
    for c in characters:
        yield c
        if c == ":":
            break


def _is_wrappable(async_func: Callable) -> bool:
    """
    Only the functions taking the clients bundle first can be wrapped.
    Functions returning a live async resource (such as a log tail) are bound to their event loop and are skipped.
    """
    signature = inspect.signature(async_func)
    parameters = list(signature.parameters)
    if len(parameters) == 0 or parameters[0] != "clients":
        return False
    return not hasattr(signature.return_annotation, "__aiter__")


def _generate_sync_wrapper_code(async_func: Callable[[Any], Awaitable[T]]) -> str:
    """
    Returns a string representation of a sync function wrapper
    around an async function, preserving the original type hints
    exactly as written in the source file.
    The 'clients' parameter is replaced by 'profile' and 'region' keyword arguments.
    """
    assert inspect.iscoroutinefunction(async_func) or inspect.isasyncgenfunction(async_func)
    # Copy the function definition in format: "async def stop_task_async(clients, cluster: str, task_arn: str) -> bool:"
    source = "".join(_function_definition_from_source(inspect.getsource(async_func)))
    source = source.replace("AsyncIterable", "Iterable").replace("AsyncIterator", "Iterator")
    # Strip "async " from the front
    signature_line = re.sub(r"^async\s+", "", source)
    # Replace function name
    func_name = async_func.__name__.removesuffix("_async")
    signature_line = signature_line.replace(async_func.__name__, func_name, 1)
    # Replace the clients bundle by the parameters to open one
    multiline = "\n" in signature_line
    signature_line = re.sub(r"\(\s*clients,?\s*", "(\n        " if multiline else "(", signature_line, count=1)
    if multiline:
        signature_line = re.sub(r"\n(\s*)\)", r"\n        profile: str | None = None,\n        region: str | None = None,\n\1)", signature_line, count=1)
    else:
        separator = "" if "()" in signature_line else ", "
        signature_line = re.sub(
            r"\)(\s*->[^:]*)?:$",
            lambda m: f"{separator}profile: str | None = None, region: str | None = None){m.group(1) or ''}:",
            signature_line,
            count=1,
        )
    # Get docstring if present
    doc = inspect.getdoc(async_func)
    if (doc is not None) and len(doc.strip()) > 0:
        doc = '    """\n' + "\n".join(("    " + line).rstrip() for line in doc.split("\n")) + '\n    """\n'
    else:
        doc = ""
    # Build wrapper body
    arguments = "".join(", " + p + "=" + p for p in list(inspect.signature(async_func).parameters)[1:])
    if inspect.iscoroutinefunction(async_func):
        body = f"return _run_async(_with_clients_async({async_func.__name__}, profile=profile, region=region{arguments}))"
    else:  # async generator
        body = f"return _async_iter_to_sync(_iter_with_clients_async({async_func.__name__}, profile=profile, region=region{arguments}))"

    return f"{signature_line}\n{doc}    {body}"


def _generate_sync_module(module: ModuleType) -> str:
    """
    generate a sync module alongside
    """
    modules = [(name, obj.__name__) for name, obj in vars(module).items() if not name.startswith("_") and inspect.ismodule(obj)]
    names = [name for name, obj in vars(module).items() if not name.startswith("_") and not inspect.ismodule(obj)]
    code = ""
    code += f"\"\"\"\nThis module was automatically generated from {module.__name__}\n\"\"\"\n"
    for name, module_name in modules:
        code += f"import {module_name}\n" if name == module_name else f"import {module_name} as {name}\n"
    code += f"from {__name__} import _run_async, _async_iter_to_sync, _with_clients_async, _iter_with_clients_async\n"
    code += f"from typing import Iterable, Iterator\n"
    code += f"from {module.__name__} import {', '.join(names)}\n"
    for filter in (inspect.isasyncgenfunction, inspect.iscoroutinefunction):
        for name, obj in inspect.getmembers(module, filter):
            if not name.startswith("_") and obj.__code__.co_filename == module.__file__ and _is_wrappable(obj):
                code += f"\n\n{_generate_sync_wrapper_code(obj)}\n"
    return code
