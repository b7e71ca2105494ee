## Interactive 3D view of a trained lattice: one marker per neuron at its
## normalized position, colored by dominant class or showing its prototype image.

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.offsetbox import AnnotationBbox, OffsetImage
from mpl_toolkits.mplot3d import proj3d

plt.rcParams.update({"font.size": 10})
# arrow keys rotate the camera instead of stepping through the toolbar history
plt.rcParams["keymap.back"] = [k for k in plt.rcParams["keymap.back"] if k != "left"]
plt.rcParams["keymap.forward"] = [k for k in plt.rcParams["keymap.forward"] if k != "right"]

ZOOM_STEP = 0.1
ZOOM_RANGE = (0.5, 3.0)
ROTATE_STEP = 5.0
ELEVATION_LIMIT = 89.0


class LatticeViewer:
    """Render a Lattice without modifying it.

    Key bindings: space toggles between class colors and prototype images,
    +/= and - zoom in and out, the arrow keys rotate the camera, escape closes
    the window. The callbacks are bound to this instance, so several viewers
    can coexist.
    """

    def __init__(self, lattice, show_images: bool = False, zoom: float = 1.0):
        self.lattice = lattice
        self.show_images = show_images
        self.zoom = zoom
        self.insets = []  # (AnnotationBbox, Neuron) pairs drawn in image mode

        self.fig = plt.figure(figsize=(8, 8), dpi=100)
        self.ax = self.fig.add_subplot(projection="3d")
        self.connection_ids = [
            self.fig.canvas.mpl_connect("key_press_event", self.on_key),
            self.fig.canvas.mpl_connect("motion_notify_event", self.on_move),
            self.fig.canvas.mpl_connect("button_release_event", self.on_move),
        ]
        self.draw()

    def image_side(self) -> int:
        """Side length of the square prototype images, 0 if they are not square."""
        side = int(np.sqrt(self.lattice.input_size))
        return side if side * side == self.lattice.input_size else 0

    def draw_cube_wireframe(self):
        corners = [-1.0, 1.0]
        for a in corners:
            for b in corners:
                self.ax.plot([-1, 1], [a, a], [b, b], color="0.7", linewidth=1)
                self.ax.plot([a, a], [-1, 1], [b, b], color="0.7", linewidth=1)
                self.ax.plot([a, a], [b, b], [-1, 1], color="0.7", linewidth=1)

    def draw(self):
        """Redraw the lattice in the current mode."""
        ax = self.ax
        ax.cla()
        self.insets = []
        self.draw_cube_wireframe()

        positions = self.lattice.positions
        side = self.image_side()

        if self.show_images and side > 0:
            ax.scatter(
                positions[:, 0], positions[:, 1], positions[:, 2], color="0.2", s=4
            )
            for neuron in self.lattice.neurons:
                image = OffsetImage(
                    neuron.prototype_image.reshape(side, side), cmap="gray", zoom=0.6
                )
                inset = AnnotationBbox(image, (0.0, 0.0), frameon=False)
                ax.add_artist(inset)
                self.insets.append((inset, neuron))
        else:
            ax.scatter(
                positions[:, 0],
                positions[:, 1],
                positions[:, 2],
                c=self.lattice.colors,
                s=60,
                depthshade=True,
            )

        ax.set_xlim(-1, 1)
        ax.set_ylim(-1, 1)
        ax.set_zlim(-1, 1)
        ax.set_box_aspect((1, 1, 1), zoom=self.zoom)
        ax.set_title(
            f"{self.lattice.xdim}x{self.lattice.ydim}x{self.lattice.zdim} lattice, "
            f"epoch {self.lattice.epoch}"
        )
        self.update_image_positions()

    def update_image_positions(self):
        """Move every prototype image to its neuron's projection under the current view."""
        projection = self.ax.get_proj()
        for inset, neuron in self.insets:
            x2, y2, _ = proj3d.proj_transform(neuron.x, neuron.y, neuron.z, projection)
            inset.xy = (x2, y2)
        self.fig.canvas.draw_idle()

    def on_move(self, event):
        # mouse rotation changes the view without going through draw()
        if self.insets:
            self.update_image_positions()

    def rotate(self, delta_elev: float = 0.0, delta_azim: float = 0.0):
        elev = float(np.clip(self.ax.elev + delta_elev, -ELEVATION_LIMIT, ELEVATION_LIMIT))
        self.ax.view_init(elev=elev, azim=self.ax.azim + delta_azim)

    def on_key(self, event):
        if event.key == " ":
            self.show_images = not self.show_images
            if self.show_images:
                print("Switched to images mode - each neuron shows its prototype", flush=True)
            else:
                print("Switched to color mode - each color is a class", flush=True)
        elif event.key in ("+", "="):
            self.zoom = min(self.zoom + ZOOM_STEP, ZOOM_RANGE[1])
        elif event.key == "-":
            self.zoom = max(self.zoom - ZOOM_STEP, ZOOM_RANGE[0])
        elif event.key == "up":
            self.rotate(delta_elev=ROTATE_STEP)
        elif event.key == "down":
            self.rotate(delta_elev=-ROTATE_STEP)
        elif event.key == "left":
            self.rotate(delta_azim=-ROTATE_STEP)
        elif event.key == "right":
            self.rotate(delta_azim=ROTATE_STEP)
        elif event.key == "escape":
            plt.close(self.fig)
            return
        else:
            return
        self.draw()

    def show(self):
        print("Controls:", flush=True)
        print("  - Mouse or arrow keys: rotate", flush=True)
        print("  - +/-: zoom in/out", flush=True)
        print("  - SPACE: toggle between images and colors", flush=True)
        print("  - ESC: exit", flush=True)
        plt.show()
