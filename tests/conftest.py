import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

import vkautogen  # noqa: E402

SAMPLE_TYPES = """
    <types comment="Vulkan type definitions">
        <type name="vk_platform" category="include">#include "vk_platform.h"</type>
        <type requires="vk_platform" name="uint32_t"/>
        <type requires="vk_platform" name="char"/>
        <type api="vulkan" category="define">// Version of this file
#define <name>VK_HEADER_VERSION</name> 213</type>
        <type api="vulkansc" category="define">// Version of this file
#define <name>VK_HEADER_VERSION</name> 14</type>
        <type category="basetype">typedef <type>uint32_t</type> <name>VkBool32</name>;</type>
        <type category="handle" objtypeenum="VK_OBJECT_TYPE_INSTANCE"><type>VK_DEFINE_HANDLE</type>(<name>VkInstance</name>)</type>
        <type category="handle" objtypeenum="VK_OBJECT_TYPE_SURFACE_KHR"><type>VK_DEFINE_NON_DISPATCHABLE_HANDLE</type>(<name>VkSurfaceKHR</name>)</type>
        <type category="handle" parent="VkSurfaceKHR" objtypeenum="VK_OBJECT_TYPE_SWAPCHAIN_KHR"><type>VK_DEFINE_NON_DISPATCHABLE_HANDLE</type>(<name>VkSwapchainKHR</name>)</type>
        <type category="handle" name="VkSwapchainKHR_old" alias="VkSwapchainKHR"/>
        <type category="struct" name="VkWidget">
            <member><type>uint32_t</type> <name>value</name></member>
        </type>
        <type category="struct" name="VkPhysicalDeviceFeatures">
            <member><type>VkBool32</type> <name>robustBufferAccess</name></member>
            <member><type>VkBool32</type> <name>geometryShader</name><comment>Geometry stage</comment></member>
        </type>
        <type category="struct" name="VkPhysicalDeviceProperties">
            <member><type>uint32_t</type> <name>apiVersion</name></member>
            <member><type>char</type> <name>deviceName</name>[<enum>VK_MAX_PHYSICAL_DEVICE_NAME_SIZE</enum>]</member>
        </type>
        <type category="struct" name="VkPhysicalDeviceMaintenance9FeaturesKHR">
            <member values="VK_STRUCTURE_TYPE_PHYSICAL_DEVICE_MAINTENANCE_9_FEATURES_KHR"><type>VkStructureType</type> <name>sType</name></member>
            <member optional="true"><type>void</type>* <name>pNext</name></member>
            <member><type>VkBool32</type> <name>maintenance9</name></member>
        </type>
    </types>
"""

SAMPLE_FEATURES = """
    <feature api="vulkan" name="VK_VERSION_1_0" number="1.0" comment="Vulkan core API interface definitions">
        <require comment="Fundamental types">
            <type name="VkBool32"/>
            <type name="VkInstance"/>
            <type name="VkPhysicalDeviceFeatures"/>
            <type name="VkPhysicalDeviceProperties"/>
            <command name="vkCreateInstance"/>
            <command name="vkDestroyInstance"/>
        </require>
    </feature>
    <feature api="vulkan" name="VK_VERSION_1_1" number="1.1">
        <require>
            <type name="VkInstance"/>
            <command name="vkEnumerateInstanceVersion"/>
        </require>
    </feature>
"""

SAMPLE_EXTENSIONS = """
    <extensions comment="Vulkan extension interface definitions">
        <extension name="VK_EXT_debug_utils" number="129" type="instance" supported="vulkan">
            <require><type name="VkInstance"/></require>
        </extension>
        <extension name="VK_KHR_swapchain" number="2" type="device" depends="VK_KHR_surface" supported="vulkan">
            <require>
                <enum value="70" name="VK_KHR_SWAPCHAIN_SPEC_VERSION"/>
                <type name="VkSwapchainKHR_old"/>
                <command name="vkCreateSwapchainKHR"/>
            </require>
        </extension>
        <extension name="VK_KHR_surface" number="1" type="instance" supported="vulkan">
            <require>
                <type name="VkSurfaceKHR"/>
                <command name="vkDestroySurfaceKHR"/>
            </require>
        </extension>
        <extension name="VK_NV_glsl_shader" number="13" type="device" supported="vulkan" deprecatedby="">
            <require/>
        </extension>
        <extension name="VK_KHR_maintenance9" number="585" type="device" supported="vulkan" promotedto="VK_VERSION_1_5">
            <require><type name="VkPhysicalDeviceMaintenance9FeaturesKHR"/></require>
        </extension>
        <extension name="VK_AMD_old" number="99" type="device" supported="vulkan" obsoletedby="VK_AMD_new">
            <require><type name="VkWidget"/></require>
        </extension>
        <extension name="VK_KHR_sc_only" number="300" type="device" supported="vulkansc">
            <require><type name="VkWidget"/></require>
        </extension>
        <extension name="VK_KHR_dual_api" number="302" type="device" supported="vulkan,vulkansc">
            <require><type name="VkWidget"/></require>
        </extension>
        <extension name="VK_EXT_disabled" number="301" supported="disabled"/>
    </extensions>
"""

SAMPLE_REGISTRY = f"""<registry>
    <comment>Sample registry</comment>
    <platforms comment="Window system platforms"/>
    {SAMPLE_TYPES}
    <enums name="API Constants" type="constants">
        <enum type="uint32_t" value="256" name="VK_MAX_PHYSICAL_DEVICE_NAME_SIZE"/>
    </enums>
    <commands comment="Vulkan command definitions"/>
    {SAMPLE_FEATURES}
    {SAMPLE_EXTENSIONS}
</registry>
"""


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def make_registry(
    make_registry_root: Callable[[str], ET.Element],
) -> Callable[[str], vkautogen.Registry]:
    def _make_registry(inner_xml: str) -> vkautogen.Registry:
        registry, _warnings = vkautogen.parse_registry(make_registry_root(inner_xml))
        return registry

    return _make_registry


@pytest.fixture
def sample_xml() -> str:
    return SAMPLE_REGISTRY


@pytest.fixture
def sample_parts() -> dict[str, str]:
    return {
        "types": SAMPLE_TYPES,
        "features": SAMPLE_FEATURES,
        "extensions": SAMPLE_EXTENSIONS,
    }


@pytest.fixture
def sample_registry() -> vkautogen.Registry:
    registry, warnings = vkautogen.parse_registry(ET.fromstring(SAMPLE_REGISTRY))
    assert warnings == []
    return registry


@pytest.fixture
def write_vk_xml(tmp_path: Path) -> Callable[[str], Path]:
    def _write_vk_xml(text: str) -> Path:
        path = tmp_path / "vk.xml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write_vk_xml
