import graphviz
import matplotlib.pyplot as plt

from wastewater_quality import WaterParameter

FLOW_PARAMETERS = (WaterParameter.BOD, WaterParameter.COD, WaterParameter.TSS, WaterParameter.NH4)


def plot_history(history, parameters=None, filename=None):
    """
    Plots recorded history series, one line per parameter.

    Args:
        history (ParameterHistory): the recorder owned by a pipeline.
        parameters (iterable, optional): WaterParameter members to draw;
            defaults to every parameter that has data.
        filename (str, optional): when given the figure is saved there.

    Returns:
        matplotlib.figure.Figure
    """
    fig, ax = plt.subplots(figsize=(12, 6))
    if parameters is None:
        keys = history.keys()
    else:
        wanted = set(parameters)
        keys = [key for key in history.keys()
                if (key[1] if isinstance(key, tuple) else key) in wanted]
    for key in keys:
        if isinstance(key, tuple):
            label = f"{key[0]}: {key[1].label}"
        else:
            label = key.label
        ax.plot(history.as_array(key), label=label)
    ax.set_title('Water Quality History', fontsize=16)
    ax.set_xlabel('Sample (oldest to newest)', fontsize=12)
    ax.set_ylabel('Value', fontsize=12)
    if keys:
        ax.legend(loc='center left', bbox_to_anchor=(1, 0.5), fontsize=10)
    ax.grid(True)
    fig.tight_layout(rect=[0, 0, 0.85, 1])
    if filename:
        fig.savefig(filename)
    return fig


def create_pfd(pipeline, parameters=FLOW_PARAMETERS):
    """Process flow diagram of the train; edges carry the water passed downstream."""
    dot = graphviz.Digraph(comment='Wastewater Treatment Train PFD', graph_attr={'rankdir': 'LR'})
    dot.attr('node', shape='box', style='rounded,filled', fillcolor='lightblue2', fontname='Helvetica')
    dot.attr('edge', fontsize='10', fontname='Helvetica')

    last = len(pipeline.units) - 1
    for i, unit in enumerate(pipeline.units):
        if i == 0:
            dot.node(f'U{i}', unit.name, fillcolor='palegreen')
        elif i == last:
            dot.node(f'U{i}', unit.name, fillcolor='lightcoral')
        else:
            dot.node(f'U{i}', f"{unit.name}\nHRT: {unit.hrt:.1f} h")

    for i, connection in enumerate(pipeline.connections):
        water = connection.upstream.outlet_water
        label = "\n".join(f"{p.name}: {water.get(p):.1f}" for p in parameters)
        dot.edge(f'U{i}', f'U{i + 1}', label=label)
    return dot
