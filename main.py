# ==============================
# Multi-Queue Scheduler Visualizer
# Intake queue -> HIGH / NORMAL queue groups, work stealing, live resizing
# ==============================

from typing import List, Optional, Tuple
import logging
import math

import pygame

from logging_setup import setup_logging
from scheduler import (
    HIGH,
    NORMAL,
    MultiQueueScheduler,
    SchedulerConfig,
    compute_metrics,
    generate_task,
    load_preset,
    load_tasks_json,
)

logger = logging.getLogger(__name__)

# ------------------------------
# CONFIG
# ------------------------------
W, H = 1100, 900
FPS = 60
TICK_MS_DEFAULT = 40  # real interval between engine ticks (one tick = 40 simulated units)
TICK_MS_MIN, TICK_MS_MAX = 10, 400

# ------------------------------
# COLORS (Neo-dark dashboard)
# ------------------------------
BG = (14, 15, 18)            # app background
PANEL = (26, 28, 34)         # primary surface
BORDER = (70, 74, 88)        # subtle border (no bright white)
OUTLINE = (10, 11, 13)       # dark outline for chips/buttons
TEXT = (240, 242, 248)
MUTED = (170, 176, 192)

ACCENT = (92, 145, 255)
GOOD = (80, 200, 140)

HIGH_COLOR = (229, 115, 115)
NORMAL_COLOR = (150, 154, 166)
IDLE_COLOR = (110, 114, 126)
BAR_BG = (18, 19, 22)

GROUP_COLORS = {HIGH: HIGH_COLOR, NORMAL: NORMAL_COLOR}
GROUP_TITLES = {HIGH: "High Priority Queue", NORMAL: "Regular Priority Queue"}

# Depth / polish
SHADOW = (0, 0, 0)
SHADOW_ALPHA = 120
SHADOW_OFFSET = (0, 6)
HILITE = (255, 255, 255)
HILITE_ALPHA = 18
HEADER_STRIP_ALPHA = 170
PAUSE_TINT = (120, 84, 24)   # header wash while an admission pause is running
SIDEBAR_SHADE = 0.82         # left column (intake + management) sits a little darker
LEFT_COLUMN_W = 435         # x where the queue column area begins


def _lerp_color(a, b, t: float):
    t = max(0.0, min(1.0, t))
    return tuple(int(round(ca + (cb - ca) * t)) for ca, cb in zip(a, b))


def _shade(color, factor: float):
    return tuple(max(0, min(255, int(c * factor))) for c in color)


# ------------------------------
# Helper drawing functions
# ------------------------------
def draw_shadow_rect(screen, rect, radius=14, alpha=SHADOW_ALPHA, offset=SHADOW_OFFSET, tint=SHADOW, spread=7):
    # Group panels cast a shadow tinted with their own colour.
    surf = pygame.Surface((rect.w + spread * 2, rect.h + spread * 2), pygame.SRCALPHA)
    pygame.draw.rect(surf, (*tint, alpha), pygame.Rect(spread, spread, rect.w, rect.h), border_radius=radius)
    screen.blit(surf, (rect.x + offset[0] - spread, rect.y + offset[1] - spread))


def draw_inner_highlight(screen, rect, color=HILITE, radius=14, alpha=HILITE_ALPHA):
    h = min(26, rect.h - 6)
    if h <= 0:
        return
    band = pygame.Surface((rect.w - 6, h), pygame.SRCALPHA)
    band.fill((0, 0, 0, 0))
    pygame.draw.rect(band, (*color, alpha), band.get_rect(), border_radius=radius)
    screen.blit(band, (rect.x + 3, rect.y + 3))


def build_background_surface():
    """Vertical gradient with a darker band behind the left column."""
    top = _shade(BG, 1.45)
    bottom = _shade(BG, 0.6)
    surf = pygame.Surface((W, H))
    for y in range(H):
        row = _lerp_color(top, bottom, y / max(1, H - 1))
        pygame.draw.line(surf, row, (0, y), (LEFT_COLUMN_W - 1, y))
        pygame.draw.line(surf, _shade(row, 1.0 / SIDEBAR_SHADE), (LEFT_COLUMN_W, y), (W - 1, y))
    return surf


def draw_header_strip(screen, height, paused=False):
    """Top fade behind the header text. Warms up while admissions are paused."""
    color = PAUSE_TINT if paused else SHADOW
    strip = pygame.Surface((W, height), pygame.SRCALPHA)
    for y in range(height):
        a = int(HEADER_STRIP_ALPHA * (1.0 - y / max(1, height - 1)) ** 1.6)
        pygame.draw.line(strip, (*color, a), (0, y), (W - 1, y))
    screen.blit(strip, (0, 0))


def draw_panel(screen, rect, title, font, color=BORDER):
    tint = SHADOW if color == BORDER else _shade(color, 0.35)
    draw_shadow_rect(screen, rect, tint=tint)
    pygame.draw.rect(screen, PANEL, rect, border_radius=14)
    draw_inner_highlight(screen, rect, color=HILITE if color == BORDER else color)
    pygame.draw.rect(screen, color, rect, 2, border_radius=14)
    t = font.render(title, True, TEXT)
    screen.blit(t, (rect.x + 12, rect.y + 8))

def draw_task_chip(screen, rect, label, color, font, glow_alpha: int = 0):
    draw_shadow_rect(screen, rect, radius=8, alpha=SHADOW_ALPHA - 20, offset=(0, 3))
    pygame.draw.rect(screen, color, rect, border_radius=8)
    pygame.draw.rect(screen, OUTLINE, rect, 2, border_radius=8)
    if glow_alpha > 0:
        glow = pygame.Surface((rect.w + 10, rect.h + 10), pygame.SRCALPHA)
        pygame.draw.rect(
            glow,
            (*ACCENT, glow_alpha),
            pygame.Rect(0, 0, glow.get_width(), glow.get_height()),
            width=3,
            border_radius=10,
        )
        screen.blit(glow, (rect.x - 5, rect.y - 5))
    txt = font.render(label, True, (10, 10, 10))
    screen.blit(txt, (rect.x + (rect.w - txt.get_width()) // 2, rect.y + (rect.h - txt.get_height()) // 2))


def draw_progress_bar(screen, rect, pct: float, color):
    pygame.draw.rect(screen, BAR_BG, rect, border_radius=6)
    fill_w = int(rect.w * max(0.0, min(100.0, pct)) / 100.0)
    if fill_w > 0:
        pygame.draw.rect(screen, color, pygame.Rect(rect.x, rect.y, fill_w, rect.h), border_radius=6)
    pygame.draw.rect(screen, OUTLINE, rect, 2, border_radius=6)


def fmt_value(v) -> str:
    if isinstance(v, float) and not v.is_integer():
        return f"{v:.1f}"
    return str(int(v))


# ------------------------------
# Tooltip
# ------------------------------
def draw_tooltip(screen, pos, lines, tiny, accent=BORDER, max_w=420):
    """Hover card next to the cursor; the left stripe takes the hovered item's colour."""
    if not lines:
        return

    rendered = [tiny.render(str(ln), True, TEXT) for ln in lines]
    line_h = tiny.get_height() + 4
    stripe = 4
    w = min(max(s.get_width() for s in rendered) + 24 + stripe, max_w)
    h = len(rendered) * line_h + 16

    box = pygame.Rect(0, 0, w, h)
    box.topleft = (pos[0] + 14, pos[1] + 14)
    # Flip to the other side of the cursor rather than run off the window.
    if box.right > W - 8:
        box.right = pos[0] - 14
    if box.bottom > H - 8:
        box.bottom = pos[1] - 14
    box.clamp_ip(pygame.Rect(8, 8, W - 16, H - 16))

    draw_shadow_rect(screen, box, radius=10, alpha=SHADOW_ALPHA - 10, offset=(0, 4))
    body = pygame.Surface(box.size, pygame.SRCALPHA)
    body.fill((*BAR_BG, 240))
    pygame.draw.rect(body, (*accent, 255), pygame.Rect(0, 0, stripe, h))
    pygame.draw.rect(body, (*BORDER, 230), body.get_rect(), 2, border_radius=10)
    screen.blit(body, box.topleft)

    ty = box.y + 8
    for surf in rendered:
        screen.blit(surf, (box.x + stripe + 10, ty))
        ty += line_h

# ------------------------------
# Intake panel
# ------------------------------
def draw_intake_panel(screen, rect, scheduler: MultiQueueScheduler, font, small, hover_items=None):
    draw_panel(screen, rect, f"Task Queue ({len(scheduler.intake)})", font)

    if not scheduler.intake:
        screen.blit(small.render("(empty: H / N / R to add)", True, MUTED), (rect.x + 14, rect.y + 48))
        return

    per_row = 5
    chip_w, chip_h = 58, 30
    gap = 8
    x0, y0 = rect.x + 14, rect.y + 46
    max_rows = max(1, (rect.h - 56) // (chip_h + gap))
    max_show = per_row * max_rows

    for i, task in enumerate(scheduler.intake[:max_show]):
        chip = pygame.Rect(x0 + (i % per_row) * (chip_w + gap), y0 + (i // per_row) * (chip_h + gap), chip_w, chip_h)
        # Head of the intake queue glows: it is the next one admitted.
        draw_task_chip(screen, chip, fmt_value(task.value), GROUP_COLORS[task.type], small, glow_alpha=90 if i == 0 else 0)
        if hover_items is not None:
            hover_items.append((chip, [f"Task #{i + 1}", f"Value: {task.value}   Type: {task.type}"], GROUP_COLORS[task.type]))

    if len(scheduler.intake) > max_show:
        more = small.render(f"(+{len(scheduler.intake) - max_show} more)", True, MUTED)
        screen.blit(more, (rect.right - 14 - more.get_width(), rect.y + 10))


# ------------------------------
# Queue panels
# ------------------------------
def draw_queue_panel(screen, rect, q, title, in_grace, small, tiny, hover_items=None, now=0):
    color = GROUP_COLORS[q.group]
    draw_panel(screen, rect, title, small, color=color)

    status = f"load {fmt_value(q.load())} | done {q.completed}"
    if in_grace:
        status += " | settling"
    st = tiny.render(status, True, MUTED)
    screen.blit(st, (rect.right - 14 - st.get_width(), rect.y + 10))

    bar = pygame.Rect(rect.x + 14, rect.bottom - 22, rect.w - 28, 12)
    draw_progress_bar(screen, bar, q.progress_percent(), color)
    if hover_items is not None:
        hover_items.append((
            bar,
            [
                f"Queue: {q.name} ({q.group})",
                f"Progress: {fmt_value(q.progress)} / {fmt_value(q.initial_duration)}  ({q.progress_percent():.0f}%)",
            ],
            color,
        ))

    chip_h = max(18, min(30, bar.y - rect.y - 40))
    chip_w, gap = 52, 6
    x0, y0 = rect.x + 14, rect.y + 32
    if bar.y - y0 < chip_h:
        return

    max_show = max(1, (rect.w - 28 - 70) // (chip_w + gap))
    for i, v in enumerate(q.pending[:max_show]):
        chip = pygame.Rect(x0 + i * (chip_w + gap), y0, chip_w, chip_h)
        running = i == 0 and q.in_flight()
        pulse = int(60 + 90 * (0.5 + 0.5 * math.sin(now / 220.0))) if running else 0
        draw_task_chip(screen, chip, fmt_value(v), GOOD if running else color, tiny, glow_alpha=pulse)
        if hover_items is not None:
            lines = [f"Queue: {q.name}", f"Value: {v}"]
            lines.append("Running" if running else f"Waiting (position {i})")
            hover_items.append((chip, lines, GOOD if running else color))

    if len(q.pending) > max_show:
        more = tiny.render(f"+{len(q.pending) - max_show}", True, MUTED)
        screen.blit(more, (x0 + max_show * (chip_w + gap), y0 + chip_h // 2 - more.get_height() // 2))
    elif not q.pending:
        screen.blit(tiny.render("IDLE", True, IDLE_COLOR), (x0, y0 + 4))


def draw_queue_column(screen, rect, scheduler: MultiQueueScheduler, small, tiny, hover_items=None, now=0):
    names = scheduler.ordered_names()
    gap = 8
    ph = (rect.h - gap * (len(names) - 1)) // max(1, len(names))
    ph = max(44, min(110, ph))

    y = rect.y
    for group in (HIGH, NORMAL):
        for idx, name in enumerate(scheduler.groups[group]):
            if y + ph > rect.bottom:
                screen.blit(small.render("(more queues below the fold)", True, MUTED), (rect.x, rect.bottom - 16))
                return
            q = scheduler.queue(name)
            title = f"{GROUP_TITLES[group]} {idx + 1}"
            draw_queue_panel(
                screen,
                pygame.Rect(rect.x, y, rect.w, ph),
                q,
                title,
                scheduler.in_grace(q),
                small,
                tiny,
                hover_items=hover_items,
                now=now,
            )
            y += ph + gap


# ------------------------------
# Metrics / queue management panel
# ------------------------------
def draw_metrics_panel(screen, rect, scheduler: MultiQueueScheduler, font, small, tiny):
    draw_panel(screen, rect, "Queue Management", font)

    rows, summary = compute_metrics(scheduler)

    lines = [
        f"High queues: {len(scheduler.groups[HIGH])}   (1 add / 2 remove)",
        f"Regular queues: {len(scheduler.groups[NORMAL])}   (3 add / 4 remove)",
        f"Completed: {summary['completed']}   Work done: {fmt_value(summary['completed_work'])}",
        f"Load  HIGH: {fmt_value(summary['load'][HIGH])}   NORMAL: {fmt_value(summary['load'][NORMAL])}",
    ]
    y = rect.y + 44
    for ln in lines:
        screen.blit(small.render(ln, True, MUTED), (rect.x + 14, y))
        y += 24

    cols = ["Queue", "Pending", "Load", "Pct", "Done"]
    col_w = [96, 70, 66, 56, 50]
    y += 8
    x = rect.x + 14
    for c, w in zip(cols, col_w):
        screen.blit(tiny.render(c, True, TEXT), (x, y))
        x += w
    y += 22

    row_h = 20
    max_rows = max(1, (rect.bottom - y - 10) // row_h)
    for r in rows[:max_rows]:
        x = rect.x + 14
        vals = [r["Queue"], str(r["Pending"]), fmt_value(r["Load"]), f"{r['Pct']:.0f}%", str(r["Done"])]
        for v, w in zip(vals, col_w):
            screen.blit(tiny.render(v, True, MUTED), (x, y))
            x += w
        y += row_h

    if len(rows) > max_rows:
        more = tiny.render(f"(+{len(rows) - max_rows} rows)", True, MUTED)
        screen.blit(more, (rect.right - 14 - more.get_width(), rect.y + 12))


# ------------------------------
# Window scaling
# ------------------------------
class Letterbox:
    """
    Fits the fixed logical canvas (W, H) into whatever the window is.

    The canvas keeps its aspect ratio, so a fullscreen desktop gets bars on
    two sides. Mouse positions go through `to_logical` before hit-testing
    the hover rects, which are all in canvas coordinates.
    """

    def __init__(self, base_size=(W, H)):
        self.base = base_size
        self.size = base_size
        self.offset = (0, 0)

    def fit(self, window_size):
        ww, wh = window_size
        bw, bh = self.base
        scale = min(ww / bw, wh / bh)
        self.size = (max(1, int(bw * scale)), max(1, int(bh * scale)))
        self.offset = ((ww - self.size[0]) // 2, (wh - self.size[1]) // 2)

    def to_logical(self, pos):
        bw, bh = self.base
        lx = int((pos[0] - self.offset[0]) * bw / self.size[0])
        ly = int((pos[1] - self.offset[1]) * bh / self.size[1])
        return (max(0, min(bw - 1, lx)), max(0, min(bh - 1, ly)))

    def present(self, window, canvas):
        window.fill(BG)
        if self.size == self.base:
            window.blit(canvas, self.offset)
        else:
            window.blit(pygame.transform.smoothscale(canvas, self.size), self.offset)
        pygame.display.flip()


# ------------------------------
# Pygame UI
# ------------------------------
def main():
    setup_logging()
    pygame.init()

    letterbox = Letterbox()
    fullscreen = False
    window = None
    # Everything is drawn to `screen` at (W, H); the letterbox scales it to `window`.
    screen = pygame.Surface((W, H))

    def set_display(full: bool):
        nonlocal window, fullscreen
        fullscreen = full
        # (0,0) picks the desktop resolution.
        window = pygame.display.set_mode((0, 0), pygame.FULLSCREEN) if full else pygame.display.set_mode((W, H))
        pygame.display.set_caption("Multi-Queue Scheduler Visualizer")
        letterbox.fit(window.get_size())

    set_display(False)
    screen = screen.convert()

    clock = pygame.time.Clock()

    title_font = pygame.font.SysFont("Arial", 30, bold=True)
    font = pygame.font.SysFont("Arial", 22, bold=True)
    small = pygame.font.SysFont("Arial", 17)
    tiny = pygame.font.SysFont("Arial", 14)

    background = build_background_surface()

    config = SchedulerConfig()
    scheduler = MultiQueueScheduler(config)
    status_msg = "Ready"

    paused = False
    tick_ms = TICK_MS_DEFAULT
    last_tick = pygame.time.get_ticks()

    def set_status(msg: str):
        nonlocal status_msg
        status_msg = msg
        logger.info(msg)

    def load_tasks(tasks, label: str):
        nonlocal scheduler
        scheduler = MultiQueueScheduler(config, tasks)
        set_status(f"Loaded {label} ({len(tasks)} tasks)")

    running = True
    while running:
        clock.tick(FPS)
        now = pygame.time.get_ticks()

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            if event.type == pygame.VIDEORESIZE and (not fullscreen):
                letterbox.fit(window.get_size())

            if event.type != pygame.KEYDOWN:
                continue

            if event.key == pygame.K_ESCAPE:
                # If in fullscreen, ESC exits fullscreen first; otherwise quit.
                if fullscreen:
                    set_display(False)
                else:
                    running = False
            elif event.key == pygame.K_f:
                set_display(not fullscreen)
            elif event.key == pygame.K_SPACE:
                paused = not paused
            elif event.key == pygame.K_UP:
                tick_ms = min(TICK_MS_MAX, tick_ms * 2)
            elif event.key == pygame.K_DOWN:
                tick_ms = max(TICK_MS_MIN, tick_ms // 2)
            elif event.key == pygame.K_h:
                scheduler.enqueue_task(generate_task("high"))
            elif event.key == pygame.K_n:
                scheduler.enqueue_task(generate_task("normal"))
            elif event.key == pygame.K_r:
                scheduler.enqueue_task(generate_task("random"))
            elif event.key in (pygame.K_a, pygame.K_RETURN, pygame.K_KP_ENTER):
                target = scheduler.admit()
                set_status(f"Admitted to {target}" if target else "Nothing to admit")
            elif event.key == pygame.K_1:
                set_status(f"Added {scheduler.grow(HIGH)}")
            elif event.key == pygame.K_2:
                removed = scheduler.shrink(HIGH)
                set_status(f"Removed {removed}" if removed else "Keeping the last high queue")
            elif event.key == pygame.K_3:
                set_status(f"Added {scheduler.grow(NORMAL)}")
            elif event.key == pygame.K_4:
                removed = scheduler.shrink(NORMAL)
                set_status(f"Removed {removed}" if removed else "Keeping the last regular queue")
            elif event.key == pygame.K_c:
                scheduler = MultiQueueScheduler(config)
                set_status("Reset")
            elif event.key in (pygame.K_F1, pygame.K_F2, pygame.K_F3):
                preset_id = {pygame.K_F1: 1, pygame.K_F2: 2, pygame.K_F3: 3}[event.key]
                load_tasks(load_preset(preset_id), f"preset F{preset_id}")
            elif event.key == pygame.K_l:
                try:
                    load_tasks(load_tasks_json("tasks.json"), "tasks.json")
                except (OSError, ValueError, KeyError) as exc:
                    logger.warning("loading tasks.json failed: %s", exc)
                    status_msg = "Load failed"

        if (not paused) and (now - last_tick >= tick_ms):
            scheduler.tick()
            last_tick = now

        hover_items = []
        screen.blit(background, (0, 0))
        draw_header_strip(screen, 150, paused=scheduler.paused)

        header = [
            "Multi-Queue Scheduler Visualizer",
            f"Tick: {scheduler.time} | Clock: {scheduler.clock} | Interval: {tick_ms}ms"
            + (" | admission pause" if scheduler.paused else ""),
            "Tasks: H high | N normal | R random | A/ENTER admit | 1/2 high +/- | 3/4 regular +/-",
            f"SPACE pause | UP slower | DOWN faster | C reset | F1-F3 presets | L tasks.json | Status: {status_msg}",
        ]
        y = 16
        title_surf = title_font.render(header[0], True, TEXT)
        screen.blit(title_surf, (18, y))
        y += title_surf.get_height() + 6
        for ln in header[1:]:
            surf = small.render(ln, True, TEXT)
            screen.blit(surf, (18, y))
            y += surf.get_height() + 6

        content_top = y + 14
        left_w = 380
        intake_h = 250

        intake_panel = pygame.Rect(40, content_top, left_w, intake_h)
        draw_intake_panel(screen, intake_panel, scheduler, font, small, hover_items=hover_items)

        metrics_panel = pygame.Rect(40, intake_panel.bottom + 14, left_w, H - intake_panel.bottom - 34)
        draw_metrics_panel(screen, metrics_panel, scheduler, font, small, tiny)

        queue_col = pygame.Rect(40 + left_w + 30, content_top, W - left_w - 110, H - content_top - 20)
        draw_queue_column(screen, queue_col, scheduler, small, tiny, hover_items=hover_items, now=now)

        if paused:
            screen.blit(title_font.render("PAUSED", True, TEXT), (900, 14))

        mx, my = letterbox.to_logical(pygame.mouse.get_pos())
        tip: Optional[Tuple[List[str], tuple]] = None
        for r, lines, accent in reversed(hover_items):
            if r.collidepoint((mx, my)):
                tip = (lines, accent)
                break
        if tip:
            draw_tooltip(screen, (mx, my), tip[0], tiny, accent=tip[1])

        letterbox.present(window, screen)

    pygame.quit()


if __name__ == "__main__":
    main()
