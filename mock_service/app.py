import asyncio
import uuid

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

app = FastAPI(title="Mock Public APIs")

jsonplaceholder = APIRouter(prefix="/jsonplaceholder")
httpbin = APIRouter(prefix="/httpbin")
reqres = APIRouter(prefix="/reqres/api")
catfacts = APIRouter(prefix="/catfacts")

_COLLECTIONS = ("posts", "comments", "albums", "photos", "todos", "users")
_FACT = "Cats sleep for around thirteen to fourteen hours a day."


def _item(collection: str, item_id: int) -> dict:
    item = {"id": item_id, "userId": (item_id - 1) // 10 + 1}
    if collection == "posts":
        item.update(title=f"post {item_id}", body=f"body of post {item_id}")
    elif collection == "users":
        item.update(name=f"User {item_id}", username=f"user{item_id}")
    else:
        item.update(title=f"{collection[:-1]} {item_id}")
    return item


@jsonplaceholder.get("/{collection}")
async def list_items(collection: str):
    if collection not in _COLLECTIONS:
        raise HTTPException(status_code=404, detail="not found")
    return [_item(collection, i) for i in range(1, 11)]


@jsonplaceholder.get("/{collection}/{item_id}")
async def get_item(collection: str, item_id: int):
    if collection not in _COLLECTIONS or not 1 <= item_id <= 10:
        raise HTTPException(status_code=404, detail="not found")
    return _item(collection, item_id)


@jsonplaceholder.post("/posts", status_code=201)
async def create_post(request: Request):
    payload = await request.json()
    return {**payload, "id": 101}


async def _echo(request: Request) -> dict:
    body = await request.body()
    try:
        parsed = await request.json() if body else None
    except ValueError:
        parsed = None
    return {
        "url": str(request.url),
        "headers": dict(request.headers),
        "data": body.decode("utf-8", errors="replace"),
        "json": parsed,
    }


@httpbin.get("/get")
async def httpbin_get(request: Request):
    return await _echo(request)


@httpbin.post("/post")
async def httpbin_post(request: Request):
    return await _echo(request)


@httpbin.put("/put")
async def httpbin_put(request: Request):
    return await _echo(request)


@httpbin.delete("/delete")
async def httpbin_delete(request: Request):
    return await _echo(request)


@httpbin.get("/delay/{seconds}")
async def httpbin_delay(seconds: float, request: Request):
    await asyncio.sleep(min(seconds, 10))
    return await _echo(request)


@httpbin.get("/uuid")
async def httpbin_uuid():
    return {"uuid": str(uuid.uuid4())}


@httpbin.get("/json")
async def httpbin_json():
    return {"slideshow": {"title": "Sample Slide Show", "slides": []}}


@httpbin.get("/headers")
async def httpbin_headers(request: Request):
    return {"headers": dict(request.headers)}


@reqres.get("/users")
async def reqres_users():
    return {"page": 1, "data": [{"id": i, "first_name": f"User{i}"} for i in range(1, 7)]}


@reqres.get("/users/{user_id}")
async def reqres_user(user_id: int):
    if not 1 <= user_id <= 12:
        return JSONResponse(status_code=404, content={})
    return {"data": {"id": user_id, "first_name": f"User{user_id}"}}


@reqres.post("/users", status_code=201)
async def reqres_create_user(request: Request):
    payload = await request.json()
    return {**payload, "id": "101", "createdAt": "1970-01-01T00:00:00.000Z"}


@reqres.get("/unknown")
async def reqres_resources():
    return {"page": 1, "data": [{"id": i, "name": f"color{i}"} for i in range(1, 7)]}


@reqres.get("/unknown/{resource_id}")
async def reqres_resource(resource_id: int):
    return {"data": {"id": resource_id, "name": f"color{resource_id}"}}


@catfacts.get("/fact")
async def fact():
    return {"fact": _FACT, "length": len(_FACT)}


@catfacts.get("/facts")
async def facts():
    return {"current_page": 1, "data": [{"fact": _FACT, "length": len(_FACT)}]}


@catfacts.get("/breeds")
async def breeds():
    return {"current_page": 1, "data": [{"breed": "Abyssinian", "country": "Ethiopia"}]}


for router in (jsonplaceholder, httpbin, reqres, catfacts):
    app.include_router(router)


# Run with: uvicorn mock_service.app:app --port 8001 --reload
