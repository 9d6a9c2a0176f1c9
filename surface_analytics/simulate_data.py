import random
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .agent import CONFIG, Analytics, EventTransport, Window
from .agent.browser import DomEvent, Navigator, Screen
from .agent.queue import BatchSender, Scheduler, set_interval
from .logging_config import configure_logging
from .seed import DEFAULT_API_KEY

# Configuration
ANALYTICS_BASE_URL = "http://localhost:8001"
SITE_URL = "http://localhost:3000"
API_KEY = DEFAULT_API_KEY

# Simulation Parameters
NUM_USERS = 20
EVENTS_PER_USER = 10

# Helper Lists
URL_PATHS = [
    "/",
    "/courses/",
    "/rankings/",
    "/register/",
    "/login/",
]
# Some course pages
URL_PATHS.extend([f"/course/{i}/" for i in range(1, 11)])

REFERRERS = [
    "https://www.google.com/",
    "https://www.bing.com/",
    "https://twitter.com/",
    None,
]

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
]

SCREEN_SIZES = [(1920, 1080), (1366, 768), (390, 844)]


def _page_title(path: str) -> str:
    parts = [part for part in path.split("/") if part]
    return " ".join(parts).title() or "Home"


def create_browser(rng: random.Random = random) -> Window:
    """A fresh browser profile: empty storage, random device and entry referrer."""
    width, height = rng.choice(SCREEN_SIZES)
    return Window(
        url=SITE_URL + "/",
        title="Home",
        referrer=rng.choice(REFERRERS) or "",
        navigator=Navigator(user_agent=rng.choice(USER_AGENTS), language="zh-CN"),
        screen=Screen(width=width, height=height),
        inner_width=width,
        inner_height=max(height - 120, 0),
        timezone_name="Asia/Shanghai",
        timezone_offset=-480,
    )


def simulate_user_journey(
    transport: BatchSender,
    rng: random.Random = random,
    scheduler: Scheduler = set_interval,
    api_key: str = API_KEY,
) -> Analytics:
    """Drive one visitor through the site with the real agent, then leave the page."""
    window = create_browser(rng)
    analytics = Analytics(window, transport=transport, scheduler=scheduler, write_key=api_key)
    analytics.load()
    document = window.document

    for _ in range(rng.randint(3, EVENTS_PER_USER)):
        # Simulate browsing behavior
        path = rng.choice(URL_PATHS)
        window.navigate(SITE_URL + path, title=_page_title(path))
        analytics.page()

        if "/course/" in path and rng.random() < 0.3:
            button = document.body.append_child(
                document.create_element("button", text="Rate this course", id="rate_button")
            )
            document.dispatch_event(DomEvent("click", target=button, client_x=640, client_y=360))

        if path == "/register/" and rng.random() < 0.5:
            form = document.body.append_child(document.create_element("form", id="register"))
            field = form.append_child(
                document.create_element(
                    "input",
                    value=f"student{rng.randint(1, 9999)}@example.com",
                    type="email",
                    name="email",
                )
            )
            document.dispatch_event(DomEvent("blur", target=field, bubbles=False))
            analytics.identify(f"user_{rng.randint(1, 9999)}", {"plan": rng.choice(["free", "pro"])})

    window.unload()
    analytics.shutdown()
    return analytics


def run(num_users: int = NUM_USERS, endpoint: Optional[str] = None) -> None:
    executor = ThreadPoolExecutor(max_workers=4)
    transport = EventTransport(endpoint or ANALYTICS_BASE_URL + CONFIG.api_endpoint, executor=executor)
    try:
        for _ in range(num_users):
            analytics = simulate_user_journey(transport)
            print(f"Simulated visitor: {analytics.visitor_id[:16]}...")
    finally:
        executor.shutdown(wait=True)


if __name__ == "__main__":
    configure_logging()
    print(f"Starting simulation of {NUM_USERS} users...")
    start_time = time.time()

    run()

    print(f"Simulation complete in {time.time() - start_time:.2f}s")
