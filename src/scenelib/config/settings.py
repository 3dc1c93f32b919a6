"""
Loader Configuration Settings

All configuration constants for the glTF scene loader.
GltfLoader keyword arguments override the loader defaults per instance.
"""

# ============================================================================
# Document Validation
# ============================================================================

SUPPORTED_ASSET_MAJOR_VERSION = "2"

# Extensions the loader understands (allowed in extensionsRequired)
SUPPORTED_EXTENSIONS = frozenset({
    "KHR_lights_punctual",
    "KHR_materials_unlit",
    "KHR_materials_emissive_strength",
    "KHR_texture_transform",
})

# URI schemes that would need network access
REMOTE_URI_SCHEMES = ("http://", "https://", "ftp://")

# ============================================================================
# Loader Defaults
# ============================================================================

# Scene selection when the document does not declare "scene" and holds several
FALLBACK_TO_FIRST_SCENE = False

# Scene graph
MAX_NODE_INSTANCES = 1_000_000  # Node instances a scene may expand to (shared subtrees count per parent)

# Geometry
GENERATE_FLAT_NORMALS = False  # True: unweld and give each triangle its face normal
GENERATE_TANGENTS = False      # True: build tangents from UVs when TANGENT is missing
GENERATED_NORMAL_FALLBACK = (0.0, 1.0, 0.0)  # Used for degenerate triangles/vertices

# Textures
DEFAULT_TEXTURE_WORKERS = 1    # >1 prefetches distinct textures on a thread pool
FORCE_RGBA_TEXTURES = False    # True: always convert decoded images to RGBA

# ============================================================================
# Numeric Tolerances
# ============================================================================

NORMAL_EPSILON = 1e-12         # Squared length below which a vector counts as zero
QUATERNION_EPSILON = 1e-12
