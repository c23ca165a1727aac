from PIL import Image


def make_jpeg(path, color=(40, 90, 160), size=(200, 150)):
    Image.new("RGB", size, color).save(path, format="JPEG", quality=95)
    return path


def make_video(path, size=512, fill=b"\x00\x11"):
    with open(path, "wb") as f:
        f.write((fill * size)[:size])
    return path


def read_bytes(path):
    with open(path, "rb") as f:
        return f.read()
