import asyncio
import time

import streamlit as st

from config.settings import settings
from frontend.controller import GenerationSessionController
from frontend.credentials import RedisCredentialStore
from frontend.ingest import DroppedFile, LocalImage, RemoteImage
from frontend.proxy_client import ProxyClient

CROSSFADE_SECONDS = 0.4


# ==========================
# Config
# ==========================
st.set_page_config(
    page_title="FLUX.2 [klein]",
    page_icon="🎨",
    layout="centered",
)

st.title("FLUX.2 [klein]")
st.caption("Ultra-fast image generation by [Black Forest Labs](https://blackforestlabs.ai)")

# ==========================
# State
# ==========================
if "controller" not in st.session_state:
    controller = GenerationSessionController(
        proxy=ProxyClient(settings.BACKEND_URL),
        credentials=RedisCredentialStore(),
        notify=st.error,
    )
    asyncio.run(controller.load_credentials())
    st.session_state["controller"] = controller
    st.session_state["last_upload"] = None

controller: GenerationSessionController = st.session_state["controller"]
# Alerts go to the current run's page
controller.notify = st.error

# ==========================
# Sidebar
# ==========================
with st.sidebar:
    api_key = st.text_input(
        "BFL API key",
        value=controller.api_key,
        type="password",
        help="Don't have a key? https://dashboard.bfl.ai/get-started",
    )
    if api_key != controller.api_key:
        asyncio.run(controller.set_api_key(api_key))

    variant = st.selectbox(
        "Model variant",
        ["9b", "4b"],
        index=["9b", "4b"].index(controller.model_variant),
        format_func=str.upper,
    )
    controller.set_model_variant(variant)

    st.markdown("---")
    st.write("Backend:", settings.BACKEND_URL)

# ==========================
# Reference image (drop target)
# ==========================
upload = st.file_uploader("Drop a reference image", type=None)
if upload is not None and upload.file_id != st.session_state["last_upload"]:
    st.session_state["last_upload"] = upload.file_id
    dropped = DroppedFile(name=upload.name, mime_type=upload.type or "", data=upload.getvalue())
    asyncio.run(controller.ingest_drop([dropped]))

# ==========================
# Image
# ==========================
image_slot = st.empty()
if controller.current_image is None:
    image_slot.info("Enter a prompt below to generate an image, or drop a reference image")
else:
    # Hand off from the previous image the first time a new one is rendered
    is_new = st.session_state.get("shown_image") != controller.current_image
    if is_new and controller.previous_preview is not None:
        image_slot.image(controller.previous_preview, use_container_width=True)
        time.sleep(CROSSFADE_SECONDS)
    controller.reveal()
    st.session_state["shown_image"] = controller.current_image
    image_slot.image(controller.current_preview, use_container_width=True)
    if isinstance(controller.current_image, RemoteImage):
        st.markdown(f"[Open original]({controller.current_image.url})")
    elif isinstance(controller.current_image, LocalImage):
        st.caption(controller.current_image.name)

edit_mode = st.toggle(
    "Edit mode: use the current image as a reference for the next generation",
    value=controller.edit_mode,
    disabled=not controller.has_image,
)
if edit_mode != controller.edit_mode:
    controller.toggle_edit_mode()

# ==========================
# Prompt
# ==========================
readout_slot = st.empty()
if controller.gen_time:
    readout_slot.caption(f"Generated in {controller.gen_time}")
# Elapsed time ticks into the page while a generation runs
controller.on_readout = lambda readout: readout_slot.caption(readout)

prompt = st.chat_input("Describe an image...")
if prompt:
    with st.spinner("Generating..."):
        image_url = asyncio.run(controller.trigger(prompt))
    # Keep the error on screen when the attempt failed
    if image_url:
        st.rerun()
