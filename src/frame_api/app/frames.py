from __future__ import annotations

from html import escape
from urllib.parse import urlencode

ENTER_PROMPT_IMAGE = "enter-prompt.png"
LOADING_IMAGE = "loading.gif"
ERROR_IMAGE = "error.png"


def frame_post_url(base_url: str, action: str, request_id: str | None = None) -> str:
    params = {"action": action}
    if request_id is not None:
        params["id"] = request_id
    return f"{base_url}/api/frame?{urlencode(params)}"


def render_frame(
    *,
    title: str,
    image_url: str,
    button_label: str,
    post_url: str,
    input_placeholder: str | None = None,
) -> str:
    """Build a frame document: preview image plus one call-to-action button."""
    input_tag = ""
    if input_placeholder is not None:
        input_tag = f'\n  <meta property="fc:frame:input:text" content="{escape(input_placeholder)}" />'
    image = escape(image_url)
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{escape(title)}</title>
  <meta property="fc:frame" content="vNext" />
  <meta property="og:image" content="{image}" />
  <meta property="fc:frame:image" content="{image}" />
  <meta property="fc:frame:button:1" content="{escape(button_label)}" />{input_tag}
  <meta property="fc:frame:post_url" content="{escape(post_url)}" />
</head>
</html>"""


def input_frame(base_url: str) -> str:
    return render_frame(
        title="Input Prompt",
        image_url=f"{base_url}/{ENTER_PROMPT_IMAGE}",
        button_label="Submit",
        post_url=frame_post_url(base_url, "submit"),
        input_placeholder="Enter your prompt",
    )


def submitted_frame(base_url: str, request_id: str) -> str:
    return render_frame(
        title="Request Submitted",
        image_url=f"{base_url}/{LOADING_IMAGE}",
        button_label="Check Status",
        post_url=frame_post_url(base_url, "check", request_id),
    )


def processing_frame(base_url: str, request_id: str) -> str:
    return render_frame(
        title="Processing",
        image_url=f"{base_url}/{LOADING_IMAGE}",
        button_label="Check Again",
        post_url=frame_post_url(base_url, "check", request_id),
    )


def completed_frame(base_url: str, request_id: str) -> str:
    return render_frame(
        title="Result",
        image_url=result_image_url(base_url, request_id),
        button_label="New Request",
        post_url=frame_post_url(base_url, "input"),
    )


def failed_frame(base_url: str) -> str:
    return render_frame(
        title="Error",
        image_url=f"{base_url}/{ERROR_IMAGE}",
        button_label="Try Again",
        post_url=frame_post_url(base_url, "input"),
    )


def fallback_frame(base_url: str) -> str:
    return render_frame(
        title="Error",
        image_url=f"{base_url}/{ERROR_IMAGE}",
        button_label="Start Over",
        post_url=frame_post_url(base_url, "input"),
    )


def result_image_url(base_url: str, request_id: str) -> str:
    return f"{base_url}/results/{request_id}.png"
