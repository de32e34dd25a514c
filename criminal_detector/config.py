# Matching defaults
SIMILARITY_THRESHOLD = 0.75
CANONICAL_SIZE = 150

# Haar cascade search
SCALE_FACTOR = 1.05
MIN_NEIGHBORS = 4
MIN_FACE_SIZE = 80  # pixels, applies to both width and height
CASCADE_FILE = "haarcascade_frontalface_default.xml"

# Gallery images are matched by suffix, case-insensitive (0001.JPG counts).
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")

# 常见系统字体候选（macOS/Windows/Linux），用于绘制带 Unicode 姓名的标注图
FONT_LIST = [
    # macOS
    "/System/Library/Fonts/STHeiti Medium.ttc",
    "/Library/Fonts/Arial Unicode.ttf",
    # Windows
    "C:\\Windows\\Fonts\\msyh.ttc",
    "C:\\Windows\\Fonts\\arialuni.ttf",
    # Linux: CJK fonts first, otherwise DejaVuSans wins and CJK names render as boxes.
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
]
